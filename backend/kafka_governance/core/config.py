from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()

PRODUCTION_ENVS = {"prod", "production"}
DEFAULT_JWT_SECRET = "dev-secret"
DEFAULT_REDACT_FIELDS = "password,token,secret,authorization,connector_config,jwt_secret"
DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


@dataclass(frozen=True)
class Settings:
    database_url: str
    app_env: str
    log_level: str
    log_format: str
    log_redact_fields: list[str]
    seed_on_startup: bool

    cors_allow_origins: list[str]
    login_url: str
    login_rate_limit_attempts: int
    login_rate_limit_window_seconds: int

    # Pool and timeout knobs only apply to PostgreSQL
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout_seconds: int
    db_pool_recycle_seconds: int
    db_connect_timeout_seconds: int
    db_statement_timeout_ms: int
    db_lock_timeout_ms: int

    cluster_api_url: str
    cluster_api_timeout_seconds: float

    jwt_secret: str
    jwt_exp_hours: int

    @property
    def is_production(self) -> bool:
        return self.app_env in PRODUCTION_ENVS


def _csv(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def get_settings() -> Settings:
    """Read settings from the environment (and .env). DATABASE_URL is mandatory."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    app_env = os.getenv("APP_ENV", "dev").lower()
    settings = Settings(
        database_url=database_url,
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text").lower(),
        log_redact_fields=_csv("LOG_REDACT_FIELDS", DEFAULT_REDACT_FIELDS),
        seed_on_startup=_flag("SEED_ON_STARTUP", app_env not in PRODUCTION_ENVS),
        cors_allow_origins=_csv("CORS_ALLOW_ORIGINS") or list(DEFAULT_CORS_ORIGINS),
        login_url=os.getenv("LOGIN_URL", "http://localhost:5173/login"),
        login_rate_limit_attempts=_int("LOGIN_RATE_LIMIT_ATTEMPTS", 10),
        login_rate_limit_window_seconds=_int("LOGIN_RATE_LIMIT_WINDOW_SECONDS", 60),
        db_pool_size=_int("DB_POOL_SIZE", 10),
        db_max_overflow=_int("DB_MAX_OVERFLOW", 20),
        db_pool_timeout_seconds=_int("DB_POOL_TIMEOUT_SECONDS", 30),
        db_pool_recycle_seconds=_int("DB_POOL_RECYCLE_SECONDS", 1800),
        db_connect_timeout_seconds=_int("DB_CONNECT_TIMEOUT_SECONDS", 10),
        db_statement_timeout_ms=_int("DB_STATEMENT_TIMEOUT_MS", 15000),
        db_lock_timeout_ms=_int("DB_LOCK_TIMEOUT_MS", 5000),
        cluster_api_url=os.getenv("CLUSTER_API_URL", "http://127.0.0.1:9343").rstrip("/"),
        cluster_api_timeout_seconds=float(os.getenv("CLUSTER_API_TIMEOUT_SECONDS", "30")),
        jwt_secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        jwt_exp_hours=_int("JWT_EXP_HOURS", 24),
    )

    if settings.is_production and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set to a non-default value in production")
    return settings
