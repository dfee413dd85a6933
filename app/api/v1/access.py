"""
v1 Access Check Endpoint (API key).
"""

import uuid
import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_api_merchant
from app.database import get_db
from app.services.access_service import AccessService

router = APIRouter()
logger = logging.getLogger(__name__)


class AccessCheckRequest(BaseModel):
    product_id: uuid.UUID
    customer_phone: str = Field(..., min_length=1)


@router.post("/access/check")
async def check_access(
    request: AccessCheckRequest,
    merchant_id=Depends(get_api_merchant),
    db: AsyncSession = Depends(get_db),
):
    """Whether a customer currently has access to one of the merchant's products."""
    service = AccessService(db)
    if not await service.get_owned_product(request.product_id, merchant_id):
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        result = await service.check_access(request.product_id, request.customer_phone)
    except Exception as e:
        logger.error(f"Access check failed for product {request.product_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to check access")

    return {"success": True, **result}
