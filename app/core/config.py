from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class RouteClassConfig:
    max_requests: int
    window_seconds: int
    per_user: bool


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    rate_limit: str
    rate_limit_enabled: bool
    rate_limit_backend: str
    rate_limit_db_path: str
    rate_limit_fail_open: bool
    route_classes: dict[str, RouteClassConfig]
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    trust_x_forwarded_for: bool
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int
    portfolio_db_path: str
    ai_log_payloads: bool
    ai_prompt_max_chars: int


def _route_class(prefix: str, max_requests: int, window_seconds: int, per_user: bool) -> RouteClassConfig:
    return RouteClassConfig(
        max_requests=_get_env_int(f"RATE_LIMIT_{prefix}_MAX", max_requests),
        window_seconds=_get_env_int(f"RATE_LIMIT_{prefix}_WINDOW", window_seconds),
        per_user=per_user,
    )


settings = Settings(
    api_key=_get_env("API_KEY"),
    rate_limit=_get_env("RATE_LIMIT", "120/minute") or "120/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    rate_limit_backend=(_get_env("RATE_LIMIT_BACKEND", "memory") or "memory").strip().lower(),
    rate_limit_db_path=_get_env("RATE_LIMIT_DB_PATH", "data/rate_limit.db") or "data/rate_limit.db",
    rate_limit_fail_open=_get_env_bool("RATE_LIMIT_FAIL_OPEN", True),
    route_classes={
        "api": _route_class("API", 100, 60, per_user=True),
        "auth": _route_class("AUTH", 10, 60, per_user=False),
        "ai": _route_class("AI", 20, 60, per_user=True),
        "public": _route_class("PUBLIC", 30, 60, per_user=False),
    },
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
    trust_x_forwarded_for=_get_env_bool("TRUST_X_FORWARDED_FOR", False),
    analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
    analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
    analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 90),
    portfolio_db_path=_get_env("PORTFOLIO_DB_PATH", "data/portfolio.db") or "data/portfolio.db",
    ai_log_payloads=_get_env_bool("AI_LOG_PAYLOADS", False),
    ai_prompt_max_chars=_get_env_int("AI_PROMPT_MAX_CHARS", 12000),
)

if settings.rate_limit_backend not in {"memory", "sqlite"}:
    raise RuntimeError("RATE_LIMIT_BACKEND must be either 'memory' or 'sqlite'.")

for _name, _cfg in settings.route_classes.items():
    if _cfg.max_requests < 1 or _cfg.window_seconds < 1:
        raise RuntimeError(f"Rate limit class '{_name}' needs a positive max and window.")

if settings.ai_prompt_max_chars < 1000:
    raise RuntimeError("AI_PROMPT_MAX_CHARS must be at least 1000.")
