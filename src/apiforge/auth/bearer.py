"""Bearer-token user extraction for HTTP adapters.

Adapters call a user extractor for every request; this one decodes an
HS256 JWT from the Authorization header. Invalid or expired tokens leave
the request unauthenticated rather than failing it, so rule checks decide
between 401 and 403.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import jwt

from apiforge.auth.types import User

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 15 * 60  # 15 minutes


def encode_user_token(
    user: User,
    secret_key: str,
    ttl: int = DEFAULT_TOKEN_TTL,
    algorithm: str = "HS256",
) -> str:
    """Issue a signed token for a user (mainly for tests and tooling)."""
    now = int(time.time())
    claims: dict[str, Any] = {"sub": user.id, "iat": now, "exp": now + ttl}
    if user.role:
        claims["role"] = user.role
    if user.email:
        claims["email"] = user.email
    return jwt.encode(claims, secret_key, algorithm=algorithm)


def decode_user_token(token: str, secret_key: str, algorithm: str = "HS256") -> User | None:
    """Decode a token into a User, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired bearer token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected invalid bearer token: %s", e)
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return User(
        id=str(subject),
        email=payload.get("email"),
        role=payload.get("role"),
        attributes={
            k: v for k, v in payload.items() if k not in ("sub", "email", "role")
        },
    )


def bearer_user_extractor(
    secret_key: str, algorithm: str = "HS256"
) -> Callable[[Mapping[str, str]], User | None]:
    """Build a user extractor reading "Authorization: Bearer <jwt>".

    The returned callable takes a header mapping (case-insensitive lookups
    are the adapter's concern; lower-case keys are tried first).
    """

    def extract(headers: Mapping[str, str]) -> User | None:
        auth_header = headers.get("authorization") or headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None
        return decode_user_token(auth_header[7:], secret_key, algorithm)

    return extract
