"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ABIs shipped with the package
DEFAULT_ABI_DIR = Path(__file__).resolve().parent.parent / "abi"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="crowdwatch", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")
    host: str = Field(default="0.0.0.0", description="HTTP bind host")
    port: int = Field(default=3001, description="HTTP bind port")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )

    # Blockchain
    rpc_ws_url: str = Field(
        default="wss://bsc-rpc.publicnode.com",
        description="WebSocket RPC endpoint of the chain node",
    )
    contract_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        description="Crowdsale contract address",
    )
    native_currency_symbol: str = Field(
        default="BNB", description="Symbol of the chain's native currency"
    )

    # Contract ABIs
    abi_dir: Path = Field(default=DEFAULT_ABI_DIR, description="Directory of ABI JSON files")
    crowdsale_abi_name: str = Field(default="Crowdsale", description="Sale contract ABI file stem")
    token_abi_name: str = Field(
        default="IERC20Metadata", description="Token contract ABI file stem"
    )
    purchase_event_name: str = Field(
        default="TokensPurchased", description="Sale event to subscribe to"
    )

    # Connection lifecycle
    reconnect_delay: float = Field(
        default=10.0, ge=0, description="Fixed delay before a reconnect attempt (seconds)"
    )
    rpc_call_timeout: float = Field(
        default=15.0, gt=0, description="Timeout for a single contract read (seconds)"
    )
    catch_up_on_reconnect: bool = Field(
        default=True,
        description="Replay logs emitted between the last seen block and the resubscription",
    )
    catch_up_max_blocks: int = Field(
        default=5000, ge=0, description="Upper bound on blocks replayed after a reconnect"
    )
    dedup_window: int = Field(
        default=10000, gt=0, description="Number of recent events remembered for dedup"
    )

    # Notifications
    notification_queue_size: int = Field(
        default=100, gt=0, description="Bounded outbound notification queue size"
    )
    telegram_bot_token: str | None = Field(default=None, description="Telegram bot token")
    telegram_chat_id: str | None = Field(default=None, description="Telegram chat/group ID")
    telegram_parse_mode: str = Field(default="Markdown", description="Telegram parse mode")
    telegram_commands_enabled: bool = Field(
        default=True, description="Answer /start, /help, /guide and /status chat commands"
    )
    telegram_poll_timeout: int = Field(
        default=30, ge=0, description="getUpdates long-poll timeout (seconds)"
    )
    telegram_poll_retry_delay: float = Field(
        default=5.0, ge=0, description="Pause after a failed getUpdates call (seconds)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    @computed_field
    @property
    def telegram_enabled(self) -> bool:
        """Check whether Telegram delivery is configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
