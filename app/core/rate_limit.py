from __future__ import annotations

from slowapi import Limiter

from app.core.config import settings
from app.core.security import client_ip


def create_limiter(default_limit: str | None = None, *, enabled: bool | None = None) -> Limiter:
    """Coarse per-IP ceiling applied to every route through SlowAPIMiddleware."""
    return Limiter(
        key_func=client_ip,
        default_limits=[default_limit or settings.rate_limit],
        enabled=settings.rate_limit_enabled if enabled is None else enabled,
    )


limiter = create_limiter()


def rate_limit(limit: str | None = None):
    if settings.rate_limit_enabled:
        return limiter.limit(limit or settings.rate_limit)

    def decorator(func):
        return func

    return decorator
