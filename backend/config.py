from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"], env_file_encoding="utf-8", extra="ignore"
    )

    # Request signing
    API_SECRET: Optional[SecretStr] = None
    API_PREFIX: str = "/api"
    SIGNATURE_MAX_AGE: int = 60  # seconds
    SIGNATURE_MAX_FUTURE_SKEW: int = 10  # seconds
    NONCE_CACHE_SIZE: int = 10_000

    # Downtime detection (all values in milliseconds)
    HEARTBEAT_TIMEOUT: int = 300_000
    DOWNTIME_CHECK_INTERVAL: int = 60_000
    DOWNTIME_CONFIRMATION_DELAY: int = 1_800_000

    # Heartbeat retention for the cleanup script
    HEARTBEAT_RETENTION_DAYS: int = 30

    # PostgreSQL Database Configuration
    POSTGRES_DB: str = "watcher"
    POSTGRES_USER: str = "watcher"
    POSTGRES_PASSWORD: str = "watcher"
    POSTGRES_PORT: int = 5432
    POSTGRES_HOST: str = "localhost"

    # SQLAlchemy connection string (+asyncpg), constructed from POSTGRES_* if unset
    DATABASE_URL: Optional[str] = None
    CREATE_TABLES: bool = False
    SQL_DEBUG: bool = False

    # Telegram notifications (disabled unless both are set)
    TELEGRAM_BOT_TOKEN: Optional[SecretStr] = None
    TELEGRAM_CHAT_ID: Optional[str] = None
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    NOTIFICATION_TIMEOUT: float = 10.0  # seconds

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 3001

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True  # Set to False for human-readable console output during development

    # File Logging Configuration
    LOG_FILE_ENABLED: bool = False  # Set to True to enable file logging with rotation
    LOG_FILE_PATH: Optional[str] = None  # Path to log file (defaults to ./logs/{service_name}.log)
    LOG_FILE_MAX_SIZE_MB: int = 10  # Maximum size in MB before rotation
    LOG_FILE_BACKUP_COUNT: int = 5  # Number of backup files to keep

    @model_validator(mode="after")
    def compute_urls(self):
        """Compute DATABASE_URL if not explicitly provided"""
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return self

    @property
    def api_secret_value(self) -> Optional[str]:
        """Trimmed API secret, or None when unset."""
        if self.API_SECRET is None:
            return None
        return self.API_SECRET.get_secret_value().strip() or None

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_BOT_TOKEN.get_secret_value() and self.TELEGRAM_CHAT_ID)


settings = Settings()
