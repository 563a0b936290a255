"""Caller identity and client address resolution for inbound requests."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import jwt

BEARER_PREFIX = "Bearer "

IP_HEADER_PRECEDENCE = (
    "cf-connecting-ip",
    "x-forwarded-for",
    "x-real-ip",
)


def anonymous_user() -> dict[str, Any]:
    """Identity bound when no valid bearer credential is supplied."""
    return {
        "id": None,
        "email": None,
        "roles": ["anonymous"],
        "abilityRules": [],
        "isAnonymous": True,
    }


def is_anonymous(user: Mapping[str, Any] | None) -> bool:
    return user is None or bool(user.get("isAnonymous")) or user.get("id") is None


def resolve_client_ip(headers: Mapping[str, str], client_host: str | None) -> str:
    """Return the originating client address.

    Proxy headers win over the socket address; a comma-separated
    ``x-forwarded-for`` list yields its first entry.
    """
    for header in IP_HEADER_PRECEDENCE:
        first = (headers.get(header) or "").split(",")[0].strip()
        if first:
            return first
    if client_host:
        return client_host
    return "unknown"


def decode_bearer_token(authorization: str | None, secret: str, algorithm: str) -> dict[str, Any] | None:
    """Verify a bearer credential and return its claims, or ``None``."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    if not secret:
        return None

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        return None

    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError:
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def resolve_identity(authorization: str | None, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    """Resolve the request user. Never raises; degrades to anonymous."""
    claims = decode_bearer_token(authorization, secret, algorithm)
    if not claims or not claims.get("id"):
        return anonymous_user()

    roles = claims.get("roles") or []
    return {
        "id": claims["id"],
        "email": claims.get("email"),
        "roles": list(roles) if isinstance(roles, (list, tuple)) else [str(roles)],
        "abilityRules": [],
        "isAnonymous": False,
    }
