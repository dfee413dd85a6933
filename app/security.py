"""
Session tokens and shared-secret checks.
"""

import hmac
from datetime import datetime, timedelta, timezone

from jose import jwt

from app.config import settings

ALGORITHM = "HS256"


def _signing_key() -> str:
    return settings.auth_jwt_secret or settings.secret_key


def create_session_token(user_id: str, expires_minutes: int = 60) -> str:
    """Issue a session token; production tokens come from the identity provider."""
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": user_id, "aud": "authenticated", "exp": exp}
    return jwt.encode(payload, _signing_key(), algorithm=ALGORITHM)


def decode_session_token(token: str) -> dict:
    return jwt.decode(
        token,
        _signing_key(),
        algorithms=[ALGORITHM],
        options={"verify_aud": False},
    )


def secrets_match(provided: str, expected: str) -> bool:
    """Constant-time comparison; an empty expected secret never matches."""
    if not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
