"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from candlesync.exceptions import ConfigError

_API_URLS = {
    "live": "https://api-fxtrade.oanda.com",
    "practice": "https://api-fxpractice.oanda.com",
}


class OandaSettings(BaseSettings):
    """OANDA v20 REST connection settings.

    Credentials are read from OANDA_ACCESS_TOKEN / OANDA_ACCOUNT_ID and may be
    overridden from the command line before validation.
    """

    model_config = SettingsConfigDict(
        env_prefix="OANDA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    access_token: SecretStr = SecretStr("")
    account_id: str = ""
    environment: Literal["live", "practice"] = "live"
    base_url: str | None = None  # overrides environment when set
    request_timeout: float = Field(30.0, gt=0)
    max_retries: int = Field(3, gt=0)
    retry_base_delay: float = Field(1.0, ge=0)

    @property
    def api_url(self) -> str:
        """Versioned REST root, e.g. https://api-fxtrade.oanda.com/v3."""
        root = self.base_url or _API_URLS[self.environment]
        return f"{root.rstrip('/')}/v3"

    def require_credentials(self) -> None:
        """Raise ConfigError unless both token and account id are present."""
        missing = []
        if not self.access_token.get_secret_value():
            missing.append("OANDA_ACCESS_TOKEN")
        if not self.account_id:
            missing.append("OANDA_ACCOUNT_ID")
        if missing:
            raise ConfigError(
                f"Missing credentials: {', '.join(missing)} "
                "(set the environment variable or pass the matching flag)"
            )


class SyncSettings(BaseSettings):
    """Sync run parameters.

    All fields configurable via SYNC_ environment variable prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: str = "oanda.db"
    granularities: str = "D,W,M"
    tickers: str | None = None  # comma-separated whitelist override
    page_size: int = Field(500, gt=0)
    max_candles: int = Field(2000, gt=0)


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    oanda: OandaSettings = Field(default_factory=OandaSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
