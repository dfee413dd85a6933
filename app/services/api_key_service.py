"""
API Key Service - issuing keys and authenticating v1 API requests.
"""

import hashlib
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_key import ApiKey
from app.periods import utcnow

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_letters + string.digits
KEY_LENGTH = 32


def generate_api_key(prefix: str) -> str:
    """Random key such as sk_live_<32 chars>."""
    body = "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_LENGTH))
    return f"{prefix}_live_{body}"


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


@dataclass
class ApiAuthResult:
    success: bool
    merchant_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class ApiKeyService:
    """Service for merchant API credentials."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_key(self, merchant_id: uuid.UUID, name: str) -> tuple[ApiKey, str]:
        """
        Issue a new key pair.

        Returns (row, secret_key). The secret is only available here.
        """
        secret_key = generate_api_key("sk")
        api_key = ApiKey(
            merchant_id=merchant_id,
            name=name,
            public_key=generate_api_key("pk"),
            secret_key_hash=hash_api_key(secret_key),
        )
        self.db.add(api_key)
        await self.db.flush()
        logger.info(f"API key {api_key.public_key} issued to merchant {merchant_id}")
        return api_key, secret_key

    async def list_keys(self, merchant_id: uuid.UUID) -> list[ApiKey]:
        result = await self.db.execute(
            select(ApiKey)
            .where(ApiKey.merchant_id == merchant_id)
            .order_by(ApiKey.created_at.desc())
        )
        return list(result.scalars().all())

    async def revoke(self, key_id: uuid.UUID, merchant_id: uuid.UUID) -> Optional[ApiKey]:
        api_key = await self.db.get(ApiKey, key_id)
        if not api_key or api_key.merchant_id != merchant_id:
            return None
        api_key.is_active = False
        await self.db.flush()
        return api_key

    async def authenticate(self, authorization: Optional[str]) -> ApiAuthResult:
        """Resolve an `Authorization: Bearer sk_...` header to a merchant."""
        if not authorization:
            return ApiAuthResult(success=False, error="Missing Authorization header")

        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
            return ApiAuthResult(
                success=False,
                error="Invalid Authorization format. Use: Bearer YOUR_SECRET_KEY",
            )

        key = parts[1]
        if not key.startswith("sk_"):
            return ApiAuthResult(success=False, error="Invalid API key. Use your secret key (sk_...)")

        result = await self.db.execute(
            select(ApiKey).where(ApiKey.secret_key_hash == hash_api_key(key))
        )
        api_key = result.scalar_one_or_none()

        if not api_key:
            return ApiAuthResult(success=False, error="Invalid API key")

        if not api_key.is_active:
            return ApiAuthResult(success=False, error="API key is inactive")

        await self._touch(api_key)

        return ApiAuthResult(success=True, merchant_id=api_key.merchant_id)

    async def _touch(self, api_key: ApiKey) -> None:
        """Record last use; never blocks authentication."""
        try:
            api_key.last_used_at = utcnow()
            await self.db.flush()
        except Exception as e:
            logger.warning(f"Failed to update last_used_at for {api_key.public_key}: {e}")
