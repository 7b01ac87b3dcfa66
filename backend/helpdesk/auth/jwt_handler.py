"""JWT create and verify for user auth."""
import time
from typing import Any

import jwt

from helpdesk.config import get_settings


def create_token(user_id: str, role: str) -> str:
    settings = get_settings()
    return jwt.encode(
        {"sub": user_id, "role": role, "exp": int(time.time()) + settings.jwt_expire_seconds},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> dict[str, Any] | None:
    try:
        settings = get_settings()
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError:
        return None
