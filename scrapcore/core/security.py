from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from scrapcore.core.config import settings


class TokenError(Exception):
    pass


# -------------------------
# JWT tokens
# -------------------------
def create_access_token(*, subject: str, role: str, tier: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(subject),
        "role": role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.JWT_ACCESS_MINUTES)).timestamp()),
    }
    # Collector tier decides which pool of available orders they see
    if tier is not None:
        payload["tier"] = tier
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Invalid token") from e
