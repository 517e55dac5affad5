"""Watcher command routing and the shared telemetry enablement state."""

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

COMMAND_TEST_CONNECTION = "testconnection"
COMMAND_START_TELEMETRY = "starttelemetry"
COMMAND_STOP_TELEMETRY = "stoptelemetry"

RESPONSE_CONNECTED = "connected"
RESPONSE_STARTED = "startedtelemetry"
RESPONSE_STOPPED = "stoppedtelemetry"
RESPONSE_NO_MATCH = "nomatch"

STATUS_OK = 200
STATUS_REJECTED = 401


class TelemetryState:
    """Mutex-guarded telemetry switch plus the one-shot send flag.

    Initialized disabled. Only the command router mutates it; the bot runtime
    reads ``enabled`` on every bar and consumes ``send_once`` on ticks.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._enabled = False
        self._send_once = False

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @property
    def send_once(self) -> bool:
        with self._lock:
            return self._send_once

    def enable(self) -> None:
        with self._lock:
            self._enabled = True
            self._send_once = True

    def disable(self) -> None:
        with self._lock:
            self._enabled = False
            self._send_once = False

    def consume_send_once(self) -> bool:
        """Clear the one-shot flag and return whether it was armed."""

        with self._lock:
            armed = self._send_once
            self._send_once = False
            return armed

    def rearm_send_once(self) -> None:
        """Re-arm the one-shot flag if telemetry is still enabled."""

        with self._lock:
            if self._enabled:
                self._send_once = True


class CommandRequest(BaseModel):
    """Inbound watcher payload, e.g. ``{"Command": "starttelemetry"}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    command: str | None = Field(default=None, alias="Command")


@dataclass(frozen=True, slots=True)
class CommandResponse:
    """Response envelope returned to the watcher."""

    response_code: int
    response: str

    def body(self) -> dict[str, str]:
        return {"response": self.response}

    def envelope(self) -> dict[str, Any]:
        return {"body": self.body(), "code": self.response_code}


NO_MATCH = CommandResponse(response_code=STATUS_REJECTED, response=RESPONSE_NO_MATCH)


class CommandErrorKind(str, enum.Enum):
    MALFORMED_PAYLOAD = "malformed_payload"
    UNKNOWN_COMMAND = "unknown_command"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True, slots=True)
class CommandError:
    kind: CommandErrorKind
    detail: str


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Either a response or a classified error; errors collapse to ``nomatch``."""

    command: str | None
    response: CommandResponse | None = None
    error: CommandError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None

    def to_response(self) -> CommandResponse:
        if self.ok:
            return self.response
        return NO_MATCH


class CommandRouter:
    """Dispatch watcher commands against a shared :class:`TelemetryState`."""

    def __init__(self, state: TelemetryState, logger: logging.Logger | None = None) -> None:
        self.state = state
        self._logger = logger or logging.getLogger(__name__)

    def route(self, command: str | None) -> CommandResponse:
        return self._route_guarded(command).to_response()

    def dispatch(self, payload: bytes | str | None) -> CommandResult:
        """Parse a raw method payload and route it; never raises."""

        try:
            request = CommandRequest.model_validate_json(payload or b"")
        except ValidationError as exc:
            result = CommandResult(
                command=None,
                error=CommandError(CommandErrorKind.MALFORMED_PAYLOAD, _first_error(exc)),
            )
            self._log_rejection(result)
            return result

        return self._route_guarded(request.command)

    def _route_guarded(self, command: str | None) -> CommandResult:
        try:
            return self._route(command)
        except Exception as exc:  # noqa: BLE001
            result = CommandResult(
                command=command,
                error=CommandError(CommandErrorKind.INTERNAL_ERROR, str(exc)),
            )
            self._log_rejection(result)
            return result

    def _route(self, command: str | None) -> CommandResult:
        if command == COMMAND_TEST_CONNECTION:
            response = CommandResponse(response_code=STATUS_OK, response=RESPONSE_CONNECTED)
        elif command == COMMAND_START_TELEMETRY:
            self.state.enable()
            response = CommandResponse(response_code=STATUS_OK, response=RESPONSE_STARTED)
        elif command == COMMAND_STOP_TELEMETRY:
            self.state.disable()
            response = CommandResponse(response_code=STATUS_OK, response=RESPONSE_STOPPED)
        else:
            result = CommandResult(
                command=command,
                error=CommandError(CommandErrorKind.UNKNOWN_COMMAND, f"unknown command: {command!r}"),
            )
            self._log_rejection(result)
            return result

        self._logger.info(
            "command_handled",
            extra={"command": command, "response": response.response, "telemetry_enabled": self.state.enabled},
        )
        return CommandResult(command=command, response=response)

    def _log_rejection(self, result: CommandResult) -> None:
        error = result.error
        self._logger.warning(
            "command_rejected",
            extra={
                "command": result.command,
                "error_kind": error.kind.value if error else None,
                "error": error.detail if error else None,
            },
        )


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    return f"{first.get('type')}: {first.get('msg')}"
