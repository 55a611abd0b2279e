# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string; sqlite:// works locally)
      - JWT_SECRET (HS256 secret used to sign customer/admin access tokens)
      - RAZORPAY_KEY_ID
      - RAZORPAY_KEY_SECRET

    Optional:
      - SMTP_* (order confirmation emails are skipped when SMTP_HOST is unset)
      - LOG_LEVEL
    """

    PROJECT_NAME: str = "SBF Flower Delivery API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    # Razorpay credentials. Only these two names are read; the key id is
    # also handed to the hosted checkout.
    RAZORPAY_KEY_ID: str
    RAZORPAY_KEY_SECRET: str
    DEFAULT_CURRENCY: str = "INR"

    # Outgoing mail (order confirmations)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "SBF Flowers"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
