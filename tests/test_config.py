"""Settings helpers for the connection string and transport endpoints."""

from renko_macd.core.config import Settings


def test_connection_string_format() -> None:
    settings = Settings(IOTHUB_NAME="fxhub", DEVICE_ID="eurusd-renko", SHARED_ACCESS_KEY="abc=")

    assert settings.connection_string() == (
        "HostName=fxhub.azure-devices.net;DeviceId=eurusd-renko;SharedAccessKey=abc="
    )


def test_websocket_url_override_wins() -> None:
    settings = Settings(IOTHUB_NAME="fxhub", DEVICE_ID="dev", TELEMETRY_WS_URL=" ws://localhost:9000/events ")
    assert settings.telemetry_ws_url() == "ws://localhost:9000/events"


def test_chart_symbol_is_normalized() -> None:
    assert Settings(CHART_SYMBOL=" eurusd ").chart_symbol() == "EURUSD"


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.COMMAND_METHOD_NAME == "WatcherToSymbolCommand"
    assert settings.telemetry_transport() == "jsonl"
