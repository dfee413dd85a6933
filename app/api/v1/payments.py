"""
v1 Payment Endpoints (API key).
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_api_merchant
from app.database import get_db
from app.fsm.states import PaymentMethod
from app.periods import utcnow, isoformat
from app.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


class CreatePaymentRequest(BaseModel):
    """Request body for opening a payment on behalf of a customer."""
    price_id: uuid.UUID
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.MTN_MOMO


@router.post("/payments/submit", status_code=201)
async def create_payment(
    request: CreatePaymentRequest,
    merchant_id=Depends(get_api_merchant),
    db: AsyncSession = Depends(get_db),
):
    """
    Open a pending payment.

    Returns the reference code the customer must quote and where to pay.
    """
    if request.payment_method == PaymentMethod.PENDING:
        raise HTTPException(status_code=400, detail="Invalid payment method")

    result = await PaymentService(db).create_payment(
        merchant_id=merchant_id,
        price_id=request.price_id,
        customer_phone=request.customer_phone,
        now=utcnow(),
        customer_email=request.customer_email,
        payment_method=request.payment_method.value,
    )
    if not result:
        raise HTTPException(status_code=404, detail="Price not found")

    payment, instructions = result
    return {
        "success": True,
        "payment": {
            "id": str(payment.id),
            "reference_code": payment.reference_code,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "payment_method": payment.payment_method,
            "status": payment.status,
            "expires_at": isoformat(payment.expires_at),
        },
        "instructions": instructions,
    }
