from pydantic_settings import BaseSettings, SettingsConfigDict
from decimal import Decimal
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEDGER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Payments Ledger"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Security settings
    rate_limit_per_minute: int = 30
    max_request_size: int = 1024 * 1024  # 1MB

    # CORS settings
    allowed_origins: List[str] = ["*"]  # In production, specify exact origins
    allowed_methods: List[str] = ["GET", "POST", "OPTIONS"]
    allowed_headers: List[str] = ["*"]

    # Ledger policy
    max_balance: Decimal = Decimal("100000000000000")  # any balance beyond this is a data error
    allow_redispute: bool = False  # allow a resolved transaction to be disputed again


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Profiles selected by the CLI; only logging differs between them
class DevelopmentSettings(Settings):
    log_level: str = "DEBUG"
    log_format: str = "text"


class ProductionSettings(Settings):
    log_level: str = "INFO"
    log_format: str = "json"


class TestingSettings(Settings):
    log_level: str = "WARNING"  # Reduce noise in tests


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
