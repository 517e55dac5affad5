"""Environment-driven settings for the bot runtime, command API and telemetry transport."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_IOTHUB_DOMAIN = "azure-devices.net"


class Settings(BaseSettings):
    """Bot settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "Renko MACD Bot"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RENKO_CHART_MODE: str = ""
    IOTHUB_NAME: str = ""
    DEVICE_ID: str = ""
    SHARED_ACCESS_KEY: str = ""
    CHART_SYMBOL: str = ""
    COMMAND_METHOD_NAME: str = "WatcherToSymbolCommand"
    BAR_EVENTS_PATH: str = "/app/data/renko_bars.jsonl"
    TELEMETRY_TRANSPORT: str = "jsonl"
    TELEMETRY_PATH: str = "/app/data/telemetry.jsonl"
    TELEMETRY_WS_URL: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def iothub_hostname(self) -> str:
        """Return the fully qualified hub host name."""

        return f"{self.IOTHUB_NAME.strip()}.{_IOTHUB_DOMAIN}"

    def connection_string(self) -> str:
        """Assemble the device connection string handed to the transport."""

        return (
            f"HostName={self.iothub_hostname()};"
            f"DeviceId={self.DEVICE_ID.strip()};"
            f"SharedAccessKey={self.SHARED_ACCESS_KEY}"
        )

    def telemetry_ws_url(self) -> str:
        """Return the websocket telemetry endpoint; empty when not configured."""

        return self.TELEMETRY_WS_URL.strip()

    def telemetry_transport(self) -> str:
        """Return the normalized transport name."""

        return self.TELEMETRY_TRANSPORT.strip().lower()

    def chart_symbol(self) -> str:
        """Return the fallback chart symbol."""

        return self.CHART_SYMBOL.strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
