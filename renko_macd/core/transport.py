"""One-way telemetry transports and the fire-and-forget publisher wrapping them."""

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Protocol, TextIO

from websockets.sync.client import ClientConnection, connect

from renko_macd.core.config import Settings
from renko_macd.core.time_utils import utc_now_iso
from renko_macd.core.types import TelemetryMessage

TRANSPORT_JSONL = "jsonl"
TRANSPORT_WEBSOCKET = "websocket"

_WS_OPEN_TIMEOUT_S = 10.0


class PublisherClosedError(RuntimeError):
    """Raised when publishing after the publisher was closed or before it was opened."""


def encode_envelope(message: TelemetryMessage) -> str:
    envelope: dict[str, Any] = {
        "body": message.body(),
        "properties": message.properties(),
        "created_at": utc_now_iso(),
    }
    return json.dumps(envelope, ensure_ascii=True, separators=(",", ":"))


class TelemetryTransport(Protocol):
    def open(self) -> None: ...

    def send(self, message: TelemetryMessage) -> None: ...

    def close(self) -> None: ...


class JsonlTransport:
    """Append telemetry envelopes to a JSONL file."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._file: TextIO | None = None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")

    def send(self, message: TelemetryMessage) -> None:
        if self._file is None:
            raise RuntimeError("telemetry file is not open")
        self._file.write(encode_envelope(message) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None


class WebsocketTransport:
    """Send telemetry envelopes as text frames over a lazily opened websocket.

    The connection string travels in the ``Authorization`` handshake header.
    The first frame on every connection is a ``connect`` frame naming the
    device. A failed send drops the connection so the next message
    reconnects.
    """

    def __init__(self, url: str, device_id: str, connection_string: str) -> None:
        if not url:
            raise ValueError("websocket transport requires TELEMETRY_WS_URL")
        self.url = url
        self.device_id = device_id
        self._connection_string = connection_string
        self._ws: ClientConnection | None = None

    def open(self) -> None:
        # connection is established on first send
        return None

    def send(self, message: TelemetryMessage) -> None:
        ws = self._ensure_connected()
        try:
            ws.send(encode_envelope(message))
        except Exception:
            self._drop()
            raise

    def close(self) -> None:
        self._drop()

    def _ensure_connected(self) -> ClientConnection:
        if self._ws is not None:
            return self._ws

        ws = connect(
            self.url,
            open_timeout=_WS_OPEN_TIMEOUT_S,
            additional_headers={"Authorization": self._connection_string},
        )
        try:
            ws.send(
                json.dumps(
                    {"type": "connect", "device_id": self.device_id},
                    ensure_ascii=True,
                    separators=(",", ":"),
                )
            )
        except Exception:
            ws.close()
            raise
        self._ws = ws
        return ws

    def _drop(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        ws.close()


def build_transport(settings: Settings) -> TelemetryTransport:
    """Return the transport selected by ``TELEMETRY_TRANSPORT``."""

    name = settings.telemetry_transport()
    if name == TRANSPORT_JSONL:
        return JsonlTransport(settings.TELEMETRY_PATH)
    if name == TRANSPORT_WEBSOCKET:
        return WebsocketTransport(
            url=settings.telemetry_ws_url(),
            device_id=settings.DEVICE_ID.strip(),
            connection_string=settings.connection_string(),
        )
    raise ValueError(f"unsupported telemetry transport: {settings.TELEMETRY_TRANSPORT!r}")


class TelemetryPublisher:
    """Fire-and-forget publishing on a single background worker.

    ``publish`` returns as soon as the send is queued. Failures are logged
    once and dropped; nothing is retried.
    """

    def __init__(self, transport: TelemetryTransport, logger: logging.Logger | None = None) -> None:
        self.transport = transport
        self._logger = logger or logging.getLogger(__name__)
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()
        self.sent_count = 0
        self.failed_count = 0

    def open(self) -> None:
        self.transport.open()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telemetry")

    def publish(self, message: TelemetryMessage) -> Future[None]:
        executor = self._executor
        if executor is None:
            raise PublisherClosedError("telemetry publisher is not open")
        try:
            future = executor.submit(self.transport.send, message)
        except RuntimeError as exc:
            # executor shut down between the check and the submit
            raise PublisherClosedError("telemetry publisher is closed") from exc
        future.add_done_callback(lambda done, message=message: self._on_done(done, message))
        return future

    def close(self) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        self.transport.close()

    def _on_done(self, future: Future[None], message: TelemetryMessage) -> None:
        exc = future.exception()
        with self._lock:
            if exc is None:
                self.sent_count += 1
            else:
                self.failed_count += 1

        if exc is None:
            self._logger.info(
                "telemetry_published",
                extra={**message.properties(), **message.body()},
            )
            return

        self._logger.warning(
            "telemetry_send_failed",
            extra={**message.properties(), "error": str(exc), "error_type": type(exc).__name__},
        )
