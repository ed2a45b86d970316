"""
Bearer-token identity.

The identity service issues HS256 JWTs carrying the user id in `sub` and the
role in `role`. This module only decodes them into an Actor; credentials and
sessions are managed elsewhere. issue_access_token() exists for tests and
operator tooling.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.actor import Actor
from domain.enums import ActorRole
from domain.errors import DomainError, UnauthorizedError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise DomainError("Server auth misconfigured (JWT secret missing).", status_code=500)
    return settings.jwt_secret


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")


def issue_access_token(*, user_id: str, role: str) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _require_secret(), algorithm="HS256")


def actor_from_token(token: Optional[str]) -> Actor:
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")
    payload = decode_access_token(token)
    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        logger.warning(f"Token for {payload.get('sub')} carries unknown role {payload.get('role')!r}")
        raise UnauthorizedError("Access token carries an unknown role.")
    return Actor(user_id=str(payload["sub"]), role=role)


async def get_current_actor(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Actor:
    return actor_from_token(_parse_bearer_token(authorization))

