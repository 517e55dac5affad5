"""Classification rules for completed Renko bars and their MACD context."""

import pytest

from renko_macd.core.signals import Classification, build_telemetry, classify
from renko_macd.core.types import Bar, BarSnapshot, IndicatorSample

UP_BAR = Bar(open=1.1000, close=1.1050)
DOWN_BAR = Bar(open=1.1050, close=1.1000)
FLAT_BAR = Bar(open=1.1000, close=1.1000)


def test_bullish_bar_with_upward_cross_is_buy() -> None:
    result = classify(UP_BAR, prev_macd=-0.2, prev_signal=-0.1, last_macd=0.1, last_signal=0.05)
    assert result == Classification(direction="up", trigger="buy")


def test_bearish_bar_with_downward_cross_is_sell() -> None:
    result = classify(DOWN_BAR, prev_macd=0.2, prev_signal=0.1, last_macd=-0.1, last_signal=-0.05)
    assert result == Classification(direction="down", trigger="sell")


@pytest.mark.parametrize(
    ("prev_macd", "prev_signal", "last_macd", "last_signal"),
    [
        (0.2, 0.1, 0.3, 0.1),
        (0.2, 0.1, -0.1, 0.05),
        (-0.2, -0.1, -0.3, -0.1),
    ],
)
def test_bullish_bar_without_upward_cross_is_indeterminate(
    prev_macd: float, prev_signal: float, last_macd: float, last_signal: float
) -> None:
    result = classify(UP_BAR, prev_macd, prev_signal, last_macd, last_signal)
    assert result == Classification(direction="up", trigger="indeterminate")


def test_bearish_bar_with_upward_cross_is_indeterminate() -> None:
    result = classify(DOWN_BAR, prev_macd=-0.2, prev_signal=-0.1, last_macd=0.1, last_signal=0.05)
    assert result == Classification(direction="down", trigger="indeterminate")


def test_touching_lines_do_not_count_as_cross() -> None:
    result = classify(UP_BAR, prev_macd=-0.1, prev_signal=-0.1, last_macd=0.1, last_signal=0.05)
    assert result is not None
    assert result.trigger == "indeterminate"


@pytest.mark.parametrize(
    "samples",
    [
        (-0.2, -0.1, 0.1, 0.05),
        (0.2, 0.1, -0.1, -0.05),
        (0.0, 0.0, 0.0, 0.0),
    ],
)
def test_flat_bar_produces_nothing(samples: tuple[float, float, float, float]) -> None:
    assert classify(FLAT_BAR, *samples) is None


def test_bar_size_counts_whole_pips() -> None:
    assert UP_BAR.size(0.0001) == 50
    assert DOWN_BAR.size(0.0001) == 50
    assert Bar(open=1.10001, close=1.10058).size(0.0001) == 5
    assert Bar(open=150.0, close=150.25).size(0.01) == 25


def test_bar_size_rejects_non_positive_unit() -> None:
    with pytest.raises(ValueError):
        UP_BAR.size(0)


def test_build_telemetry_matches_worked_example() -> None:
    snapshot = BarSnapshot(
        symbol="EURUSD",
        bar=UP_BAR,
        indicator=IndicatorSample(prev_macd=-0.2, last_macd=0.1, prev_signal=-0.1, last_signal=0.05),
        pip_size=0.0001,
    )

    message = build_telemetry(snapshot, renko_mode="ShortTerm")

    assert message is not None
    assert message.body() == {"BarType": "up", "BarSize": 50}
    assert message.properties() == {
        "symbolname": "EURUSD",
        "chart": "renko",
        "renkomode": "ShortTerm",
        "trigger": "buy",
    }


def test_build_telemetry_skips_flat_bar() -> None:
    snapshot = BarSnapshot(
        symbol="EURUSD",
        bar=FLAT_BAR,
        indicator=IndicatorSample(prev_macd=-0.2, last_macd=0.1, prev_signal=-0.1, last_signal=0.05),
        pip_size=0.0001,
    )
    assert build_telemetry(snapshot, renko_mode="ShortTerm") is None
