from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from app.core.config import settings


@dataclass(frozen=True)
class Identity:
    user_id: str | None
    is_authenticated: bool
    client_ip: str


def client_ip(request: Request) -> str:
    if settings.trust_x_forwarded_for:
        forwarded_for = request.headers.get("x-forwarded-for", "").strip()
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def check_api_key(x_api_key: str | None) -> None:
    if not settings.api_key:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please provide a valid API key.",
        )


def resolve_identity(request: Request) -> Identity:
    """Identity forwarded by the upstream auth layer; anonymous callers get IP-only identity."""
    check_api_key(request.headers.get("x-api-key"))
    user_id = (request.headers.get("x-user-id") or "").strip() or None
    return Identity(user_id=user_id, is_authenticated=user_id is not None, client_ip=client_ip(request))


def require_user(request: Request) -> Identity:
    identity = resolve_identity(request)
    if not identity.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to use AI features.",
        )
    return identity
