"""Shared lightweight types for bars, indicator samples and wire messages."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

CHART_TYPE = "renko"

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"

TRIGGER_BUY = "buy"
TRIGGER_SELL = "sell"
TRIGGER_INDETERMINATE = "indeterminate"


def _as_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class Bar:
    """Open and close of the most recently completed chart period."""

    open: float
    close: float

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def size(self, unit: float) -> int:
        """Return the absolute open-to-close range as a truncated count of price units."""

        step = _as_decimal(unit)
        if step <= 0:
            raise ValueError(f"unit must be positive, got {unit!r}")
        price_range = abs(_as_decimal(self.close) - _as_decimal(self.open))
        return int(price_range / step)


@dataclass(frozen=True, slots=True)
class IndicatorSample:
    """Trailing MACD and signal line values at offsets 2 (prev) and 1 (last)."""

    prev_macd: float
    last_macd: float
    prev_signal: float
    last_signal: float


@dataclass(frozen=True, slots=True)
class BarSnapshot:
    """One host event: the last completed bar plus its indicator context."""

    symbol: str
    bar: Bar
    indicator: IndicatorSample
    pip_size: float
    bar_id: int | None = None


@dataclass(frozen=True, slots=True)
class TelemetryMessage:
    """Classification of a completed bar, sent once to the cloud endpoint."""

    bar_type: str
    bar_size: int
    symbol_name: str
    renko_mode: str
    trigger: str
    chart: str = CHART_TYPE

    def body(self) -> dict[str, Any]:
        return {"BarType": self.bar_type, "BarSize": self.bar_size}

    def properties(self) -> dict[str, str]:
        return {
            "symbolname": self.symbol_name,
            "chart": self.chart,
            "renkomode": self.renko_mode,
            "trigger": self.trigger,
        }
