"""
JWT verification for the dispatch API

Tokens are issued by the organization's identity provider with a shared
secret. The payload carries the member id and the role at issue time; the
role is re-read from the database on every request.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    member_id: int
    role: str
    exp: int  # Unix timestamp


def create_access_token(member_id: int, role: str, expires_minutes: Optional[int] = None) -> str:
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not set; cannot issue tokens")
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"member_id": member_id, "role": role, "exp": int(expire.timestamp())}
    return pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenPayload]:
    """Decoded payload, or None for an invalid, expired or malformed token"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty; rejecting token")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except ValidationError as e:
        logger.warning("JWT payload malformed", extra_data={"error_count": e.error_count()})
        return None
