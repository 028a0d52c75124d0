"""HS256 access tokens carrying an integer user id in ``sub``.

Tokens are issued by the identity service; ``encode_access`` exists for tooling
and tests. ``sub`` is serialised as a string per RFC 7519.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from swipematch.settings import settings

ISSUER = "swipematch-api"
AUDIENCE = "swipematch-app"
ALGORITHM = "HS256"
LEEWAY_SECONDS = 5


def encode_access(user_id: int, *, session_id: Optional[str] = None, ttl_seconds: int = 3600) -> str:
    now = int(time.time())
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    if session_id:
        claims["sid"] = session_id
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
    """Validate signature and registered claims; raises ``InvalidTokenError`` subclasses."""
    claims = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=LEEWAY_SECONDS,
        options={"require": ["sub", "exp", "iat", "iss", "aud"]},
    )
    if not str(claims["sub"]).isdigit():
        raise InvalidTokenError("sub_not_user_id")
    return claims
