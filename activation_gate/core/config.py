from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Activation Gate"
    debug: bool = False
    environment: str = "development"  # env: ENVIRONMENT; "production" refuses the dev bypass

    # Web client (CORS origin)
    frontend_url: str = "http://localhost:3000"

    # Redis (activation records, question banks, quiz attempt windows)
    redis_url: str = "redis://localhost:6379"

    # Clerk
    clerk_publishable_key: str = ""
    clerk_allowed_origins: list[str] = [
        "http://localhost:3000",
    ]
    # Optional strict audience validation for Clerk JWTs (empty = disabled)
    clerk_allowed_audiences: list[str] = []

    # Activation gate
    passing_threshold_percent: float = Field(default=80.0, ge=0, le=100)
    dev_bypass_enabled: bool = False  # env: DEV_BYPASS_ENABLED; never true in production
    default_role: str = "doer"
    step_orders: dict[str, list[str]] = {
        "doer": ["profile", "training", "quiz", "bank_details"],
        "supervisor": ["profile", "training", "quiz", "bank_details"],
        "client": ["profile", "payment_method"],
    }
    route_table_file: str = ""  # env: ROUTE_TABLE_FILE; JSON route classification, defaults when empty
    record_fetch_timeout_seconds: float = 2.0

    # Quiz attempt window (3 attempts per rolling hour)
    quiz_max_attempts: int = 3
    quiz_attempt_window_seconds: int = 3600

    # Paths the request-level gate never evaluates (API calls guard themselves)
    gate_exempt_prefixes: list[str] = [
        "/api/",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
