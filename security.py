
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from settings import Settings


# -----------------------
# Access tokens (JWT)
# -----------------------
# Tokens are issued by the user service; this service only needs to read them.
# create_access_token exists for local tooling and tests.
def create_access_token(sub: str, settings: Settings, minutes: Optional[int] = None) -> str:
    exp_minutes = minutes or settings.JWT_ACCESS_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return {}
