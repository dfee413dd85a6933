import uuid
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.user import User
from app.security import decode_session_token, secrets_match
from app.services.api_key_service import ApiKeyService

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the dashboard session token to an active user.
    Raises 401 otherwise.
    """
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = decode_session_token(creds.credentials)
        user_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


async def get_api_merchant(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> uuid.UUID:
    """Authenticate a v1 API call by secret key. Returns the merchant id."""
    result = await ApiKeyService(db).authenticate(authorization)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=result.error)
    return result.merchant_id


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Scheduled-job endpoints require `Bearer <CRON_SECRET>`."""
    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):]

    if not secrets_match(token, settings.cron_secret):
        logger.warning("Rejected cron request with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
