"""MACD crossover classification of completed Renko bars."""

import logging
from dataclasses import dataclass

from renko_macd.core.types import (
    DIRECTION_DOWN,
    DIRECTION_UP,
    TRIGGER_BUY,
    TRIGGER_INDETERMINATE,
    TRIGGER_SELL,
    Bar,
    BarSnapshot,
    TelemetryMessage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Classification:
    """Direction and trigger derived from one bar and its MACD context."""

    direction: str
    trigger: str


def crossed_above(prev_macd: float, prev_signal: float, last_macd: float, last_signal: float) -> bool:
    return prev_macd < prev_signal and last_macd > last_signal


def crossed_below(prev_macd: float, prev_signal: float, last_macd: float, last_signal: float) -> bool:
    return prev_macd > prev_signal and last_macd < last_signal


def classify(
    bar: Bar,
    prev_macd: float,
    prev_signal: float,
    last_macd: float,
    last_signal: float,
) -> Classification | None:
    """Classify a completed bar; first match wins, flat bars yield None."""

    if bar.is_bullish and crossed_above(prev_macd, prev_signal, last_macd, last_signal):
        return Classification(direction=DIRECTION_UP, trigger=TRIGGER_BUY)
    if bar.is_bearish and crossed_below(prev_macd, prev_signal, last_macd, last_signal):
        return Classification(direction=DIRECTION_DOWN, trigger=TRIGGER_SELL)
    if bar.is_bullish:
        return Classification(direction=DIRECTION_UP, trigger=TRIGGER_INDETERMINATE)
    if bar.is_bearish:
        return Classification(direction=DIRECTION_DOWN, trigger=TRIGGER_INDETERMINATE)
    return None


def build_telemetry(snapshot: BarSnapshot, renko_mode: str) -> TelemetryMessage | None:
    """Return the telemetry message for a snapshot, or None for a flat bar."""

    indicator = snapshot.indicator
    classification = classify(
        snapshot.bar,
        prev_macd=indicator.prev_macd,
        prev_signal=indicator.prev_signal,
        last_macd=indicator.last_macd,
        last_signal=indicator.last_signal,
    )
    if classification is None:
        logger.debug(
            "signal_flat_bar_skipped",
            extra={"symbol": snapshot.symbol, "bar_id": snapshot.bar_id, "open": snapshot.bar.open},
        )
        return None

    return TelemetryMessage(
        bar_type=classification.direction,
        bar_size=snapshot.bar.size(snapshot.pip_size),
        symbol_name=snapshot.symbol,
        renko_mode=renko_mode,
        trigger=classification.trigger,
    )
