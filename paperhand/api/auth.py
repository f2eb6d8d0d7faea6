"""JWT verification for dashboard connections.

Tokens are issued by the outer auth layer and carry the numeric user id in
a ``userId`` claim. SSE clients cannot set headers from ``EventSource``, so
the token may also arrive as a ``token`` query parameter.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from jose import JWTError, jwt
from loguru import logger

USER_ID_CLAIM = "userId"


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any] | None:
    """Decode and validate a JWT. Returns None on any failure."""
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        logger.debug(f"[AUTH] Rejected token: {e}")
        return None


def user_id_from_token(token: str, secret: str, algorithm: str = "HS256") -> int | None:
    payload = decode_token(token, secret, algorithm)
    if not payload:
        return None
    raw = payload.get(USER_ID_CLAIM)
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def extract_token(request: Request) -> str | None:
    """Bearer header first, then the ``token`` query parameter."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.query_params.get("token") or None


def resolve_user_id(
    request: Request,
    *,
    secret: str,
    algorithm: str,
    multi_tenant: bool,
    default_user_id: int,
) -> int | None:
    """User owning a connection.

    Local single-user mode falls back to the default user. Multi-tenant
    mode never guesses: an unauthenticated connection belongs to nobody.
    """
    token = extract_token(request)
    if token:
        user_id = user_id_from_token(token, secret, algorithm)
        if user_id is not None:
            return user_id
    return None if multi_tenant else default_user_id
