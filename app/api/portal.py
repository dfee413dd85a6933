"""
Customer Portal Endpoints (public).
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.periods import utcnow
from app.services.portal_service import PortalService

router = APIRouter()
logger = logging.getLogger(__name__)


class LookupRequest(BaseModel):
    phone: Optional[str] = None


@router.post("/lookup")
async def lookup_customer(
    request: LookupRequest,
    db: AsyncSession = Depends(get_db),
):
    """List a customer's subscriptions and recent payments by phone number."""
    if not request.phone or not request.phone.strip():
        raise HTTPException(status_code=400, detail="Phone number is required")

    return await PortalService(db).lookup(request.phone, utcnow())
