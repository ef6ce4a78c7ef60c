"""OTP Login — configuration loaded from environment."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Identity store (durable) ──────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_login.db"
    database_timeout_seconds: float = 3.0

    # ── Ephemeral store (OTP codes, rate-limit counters) ──
    ephemeral_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    store_timeout_seconds: float = 3.0

    # ── One-time codes ────────────────────────────────────
    otp_ttl_seconds: int = 120
    otp_single_use: bool = True
    log_otp_codes: bool = True

    # ── Rate limiting ─────────────────────────────────────
    rate_limit_max: int = 3
    rate_limit_window_seconds: int = 600

    # ── Bearer tokens ─────────────────────────────────────
    jwt_secret: str = "change-me-in-production-use-32-bytes-or-more"
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = 48
    token_leeway_seconds: int = 0

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Login"
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
