"""Renko MACD bot: tails host bar/tick events, gates telemetry, serves watcher commands."""

import json
import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import uvicorn

from renko_macd.core.commands import CommandRouter, TelemetryState
from renko_macd.core.config import Settings, get_settings
from renko_macd.core.logging import configure_logging
from renko_macd.core.signals import build_telemetry
from renko_macd.core.transport import PublisherClosedError, TelemetryPublisher, build_transport
from renko_macd.core.types import Bar, BarSnapshot, IndicatorSample, TelemetryMessage
from renko_macd.services.api.main import create_app

EVENT_BAR_CLOSE = "bar_close"
EVENT_TICK = "tick"

_POLL_SLEEP_S = 0.5
_WAIT_LOG_POLL_INTERVAL = 20
_EVENT_THREAD_JOIN_TIMEOUT_S = 5.0


@dataclass(slots=True)
class TailState:
    """Mutable file tail offset and wait-tracking state."""

    path: Path
    offset: int = 0
    wait_polls: int = 0


class RenkoMacdBot:
    """Host-robot lifecycle around the classifier and the telemetry publisher."""

    def __init__(
        self,
        settings: Settings,
        state: TelemetryState,
        publisher: TelemetryPublisher,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.state = state
        self.publisher = publisher
        self.renko_mode = settings.RENKO_CHART_MODE
        self._logger = logger or logging.getLogger(__name__)
        self._last_snapshot: BarSnapshot | None = None
        self._last_published_bar_id: int | None = None
        self.published_count = 0

    @property
    def last_snapshot(self) -> BarSnapshot | None:
        return self._last_snapshot

    def on_start(self) -> None:
        self.publisher.open()
        self._logger.info(
            "bot_startup",
            extra={
                "symbol": self.settings.chart_symbol(),
                "renko_mode": self.renko_mode,
                "iothub": self.settings.iothub_hostname(),
                "device_id": self.settings.DEVICE_ID,
                "transport": self.settings.telemetry_transport(),
            },
        )

    def on_bar(self, snapshot: BarSnapshot) -> TelemetryMessage | None:
        self._last_snapshot = snapshot
        if not self.state.enabled:
            return None
        return self._send(snapshot, source=EVENT_BAR_CLOSE)

    def on_tick(self, snapshot: BarSnapshot | None = None) -> TelemetryMessage | None:
        if snapshot is not None:
            self._last_snapshot = snapshot
        if not self.state.consume_send_once():
            return None

        target = self._last_snapshot
        if target is None:
            # nothing to classify yet; keep the one-shot for the next tick
            self.state.rearm_send_once()
            self._logger.info("bot_send_once_waiting_for_bar")
            return None
        return self._send(target, source=EVENT_TICK)

    def on_stop(self) -> None:
        self.publisher.close()
        self._logger.info(
            "bot_shutdown",
            extra={
                "published": self.published_count,
                "sent": self.publisher.sent_count,
                "failed": self.publisher.failed_count,
            },
        )

    def _send(self, snapshot: BarSnapshot, source: str) -> TelemetryMessage | None:
        if snapshot.bar_id is not None and snapshot.bar_id == self._last_published_bar_id:
            self._logger.info(
                "bot_bar_already_published",
                extra={"symbol": snapshot.symbol, "bar_id": snapshot.bar_id, "source": source},
            )
            return None

        message = build_telemetry(snapshot, self.renko_mode)
        if message is None:
            return None

        try:
            self.publisher.publish(message)
        except PublisherClosedError:
            self._logger.warning(
                "bot_publisher_closed",
                extra={"symbol": snapshot.symbol, "bar_id": snapshot.bar_id, "source": source},
            )
            return None
        self.published_count += 1
        if snapshot.bar_id is not None:
            self._last_published_bar_id = snapshot.bar_id
        return message


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        numeric_value = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric_value):
        return None
    return numeric_value


def parse_snapshot(payload: dict[str, Any], fallback_symbol: str = "") -> BarSnapshot | None:
    """Build a snapshot from a host event, or None when any required field is unusable."""

    fields = {
        key: _as_float(payload.get(key))
        for key in (
            "open",
            "close",
            "pip_size",
            "macd_prev",
            "macd_last",
            "signal_prev",
            "signal_last",
        )
    }
    if any(value is None for value in fields.values()):
        return None
    if fields["pip_size"] <= 0:
        return None

    symbol_raw = payload.get("symbol")
    symbol = str(symbol_raw).upper().strip() if symbol_raw is not None else ""
    if not symbol:
        symbol = fallback_symbol
    if not symbol:
        return None

    return BarSnapshot(
        symbol=symbol,
        bar=Bar(open=fields["open"], close=fields["close"]),
        indicator=IndicatorSample(
            prev_macd=fields["macd_prev"],
            last_macd=fields["macd_last"],
            prev_signal=fields["signal_prev"],
            last_signal=fields["signal_last"],
        ),
        pip_size=fields["pip_size"],
        bar_id=_as_int(payload.get("bar_id")),
    )


def handle_event(bot: RenkoMacdBot, payload: dict[str, Any], logger: logging.Logger) -> TelemetryMessage | None:
    """Route one decoded host event to the bot."""

    event_type = payload.get("type")
    fallback_symbol = bot.settings.chart_symbol()

    if event_type == EVENT_BAR_CLOSE:
        snapshot = parse_snapshot(payload, fallback_symbol=fallback_symbol)
        if snapshot is None:
            logger.warning("bot_bar_event_invalid", extra={"payload": payload})
            return None
        return bot.on_bar(snapshot)

    if event_type == EVENT_TICK:
        return bot.on_tick(parse_snapshot(payload, fallback_symbol=fallback_symbol))

    return None


def _read_new_lines(tail: TailState, logger: logging.Logger) -> list[str]:
    if not tail.path.exists():
        tail.wait_polls += 1
        if tail.wait_polls % _WAIT_LOG_POLL_INTERVAL == 0:
            logger.info("bot_waiting_for_event_file", extra={"path": str(tail.path)})
        return []

    try:
        size = tail.path.stat().st_size
        if size < tail.offset:
            logger.info(
                "bot_event_file_truncated",
                extra={"path": str(tail.path), "previous_offset": tail.offset, "size": size},
            )
            tail.offset = 0

        with tail.path.open("rb") as file_obj:
            file_obj.seek(tail.offset)
            data = file_obj.read()
    except OSError as exc:
        tail.wait_polls += 1
        logger.warning("bot_event_read_failed", extra={"path": str(tail.path), "error": str(exc)})
        return []

    # an unterminated trailing line is still being written; leave it for the next poll
    complete_len = data.rfind(b"\n") + 1
    tail.offset += complete_len
    lines = data[:complete_len].decode("utf-8", errors="replace").splitlines(keepends=True)

    tail.wait_polls = 0 if lines else tail.wait_polls + 1
    return lines


def process_lines(bot: RenkoMacdBot, lines: list[str], logger: logging.Logger) -> int:
    """Feed raw JSONL lines to the bot and return how many messages were published."""

    published = 0
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("bot_event_invalid_json")
            continue
        if not isinstance(payload, dict):
            continue
        if handle_event(bot, payload, logger) is not None:
            published += 1
    return published


def run_event_loop(
    bot: RenkoMacdBot,
    events_path: str,
    shutdown_event: threading.Event,
    logger: logging.Logger,
) -> None:
    """Tail the host event file until shutdown is requested."""

    tail = TailState(path=Path(events_path))
    while not shutdown_event.is_set():
        lines = _read_new_lines(tail, logger)
        if not lines:
            shutdown_event.wait(_POLL_SLEEP_S)
            continue
        process_lines(bot, lines, logger)


def main() -> int:
    """Run the bar listener and the command API until interrupted."""

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger(__name__)

    try:
        transport = build_transport(settings)
    except ValueError as exc:
        logger.error("bot_invalid_transport", extra={"error": str(exc)})
        return 1

    state = TelemetryState()
    router = CommandRouter(state)
    bot = RenkoMacdBot(settings, state, TelemetryPublisher(transport))

    try:
        bot.on_start()
    except OSError as exc:
        logger.error(
            "bot_telemetry_path_error",
            extra={"path": settings.TELEMETRY_PATH, "error": str(exc)},
        )
        return 1

    shutdown_event = threading.Event()
    event_thread = threading.Thread(
        target=run_event_loop,
        args=(bot, settings.BAR_EVENTS_PATH, shutdown_event, logger),
        name="bar-events",
        daemon=True,
    )
    event_thread.start()

    try:
        # uvicorn owns SIGINT/SIGTERM and returns once it has shut down
        uvicorn.run(
            create_app(router, settings),
            host=settings.HOST,
            port=settings.PORT,
            log_config=None,
        )
    finally:
        shutdown_event.set()
        event_thread.join(timeout=_EVENT_THREAD_JOIN_TIMEOUT_S)
        if event_thread.is_alive():
            logger.warning("bot_event_thread_still_running")
        bot.on_stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
