# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string; sqlite works for local runs)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - SMTP_* (order emails are skipped when SMTP_HOST is not set)
      - BAKER_NOTIFICATION_EMAIL (inbox that receives new-order notices)
    """

    PROJECT_NAME: str = "Crumb & Co Bakery API"
    API_V1_STR: str = "/api/v1"

    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    # Cart / checkout pricing
    TAX_RATE: float = 0.0825
    DELIVERY_FEE: float = 10.0

    # Cart synchronization
    CART_SAVE_DEBOUNCE_SECONDS: float = 0.5
    LOCAL_CART_PATH: str = ".cart_storage.json"

    # Order history reconciliation
    ORDER_DEDUP_WINDOW_MINUTES: int = 60

    # Email (SMTP)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Crumb & Co Bakery"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    BAKER_NOTIFICATION_EMAIL: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
