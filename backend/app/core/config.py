from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Tow Truck Dispatch"
    environment: str = "local"
    log_level: str = "INFO"

    storage_backend: str = "memory"
    database_url: str = "sqlite+aiosqlite:///./towing.db"

    payment_provider: str = "mock"
    stripe_api_key: str | None = None
    stripe_currency: str = "usd"
    payment_return_url: str = "http://localhost:5173/confirmation"

    admin_webhook_url: str | None = None
    notification_timeout_seconds: float = 8.0
    google_maps_api_key: str | None = None

    allow_test_mode: bool = True
    store_retry_attempts: int = 3
    store_retry_backoff_seconds: float = 1.0
    default_page_size: int = 10
    orphan_grace_minutes: int = 30

    model_config = SettingsConfigDict(case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env")
    return Settings()


settings = get_settings()
