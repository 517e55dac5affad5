"""FastAPI surface for watcher direct-method calls plus health and version probes."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from renko_macd.core.commands import RESPONSE_NO_MATCH, CommandRouter
from renko_macd.core.config import Settings

_STATUS_UNKNOWN_METHOD = 404

logger = logging.getLogger(__name__)


def create_app(router: CommandRouter, settings: Settings) -> FastAPI:
    """Build the API app bound to a command router and its telemetry state."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "api_startup",
            extra={
                "service": "api",
                "env": settings.ENV,
                "version": settings.VERSION,
                "method": settings.COMMAND_METHOD_NAME,
            },
        )
        yield

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.command_router = router

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return process liveness status."""

        return {"status": "ok"}

    @app.get("/version")
    def version() -> dict[str, str]:
        """Return application metadata from shared settings."""

        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "env": settings.ENV,
        }

    @app.get("/telemetry")
    def telemetry_status() -> dict[str, bool]:
        """Return the current telemetry switch and one-shot flag."""

        return {
            "enabled": router.state.enabled,
            "send_once": router.state.send_once,
        }

    @app.post("/methods/{method_name}")
    async def invoke_method(method_name: str, request: Request) -> JSONResponse:
        """Invoke a direct method; the reply status mirrors the envelope code."""

        if method_name != settings.COMMAND_METHOD_NAME:
            logger.warning("api_unknown_method", extra={"method": method_name})
            envelope: dict[str, Any] = {
                "body": {"response": RESPONSE_NO_MATCH},
                "code": _STATUS_UNKNOWN_METHOD,
            }
            return JSONResponse(status_code=_STATUS_UNKNOWN_METHOD, content=envelope)

        payload = await request.body()
        response = router.dispatch(payload).to_response()
        return JSONResponse(status_code=response.response_code, content=response.envelope())

    return app
