"""
API Key Endpoints.
"""

import uuid
import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.models.api_key import ApiKey
from app.models.user import User
from app.periods import isoformat
from app.services.api_key_service import ApiKeyService

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateApiKeyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


def api_key_payload(api_key: ApiKey) -> dict:
    return {
        "id": str(api_key.id),
        "name": api_key.name,
        "public_key": api_key.public_key,
        "is_active": api_key.is_active,
        "last_used_at": isoformat(api_key.last_used_at),
        "created_at": isoformat(api_key.created_at),
    }


@router.get("")
async def list_api_keys(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    keys = await ApiKeyService(db).list_keys(user.id)
    return {"api_keys": [api_key_payload(k) for k in keys]}


@router.post("", status_code=201)
async def create_api_key(
    request: CreateApiKeyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The secret key is shown once and only its hash is stored."""
    api_key, secret_key = await ApiKeyService(db).create_key(user.id, request.name)
    return {"api_key": api_key_payload(api_key), "secret_key": secret_key}


@router.delete("/{key_id}")
async def revoke_api_key(
    key_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    api_key = await ApiKeyService(db).revoke(key_id, user.id)
    if not api_key:
        raise HTTPException(status_code=404, detail="API key not found")
    return {"success": True, "api_key": api_key_payload(api_key)}
