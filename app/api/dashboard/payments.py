"""
Payment Endpoints.
Customer claim submission and merchant reconciliation.
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, AliasChoices, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.models.user import User
from app.periods import utcnow
from app.services.payment_service import PaymentService, payment_payload

router = APIRouter()
logger = logging.getLogger(__name__)

NOT_FOUND = "Payment not found or already processed"


class SubmitClaimRequest(BaseModel):
    """Customer's proof of a transfer. Accepts snake_case or camelCase keys."""
    reference_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("reference_code", "referenceCode")
    )
    transaction_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("transaction_id", "transactionId")
    )
    proof_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("proof_url", "proofUrl")
    )


class RejectRequest(BaseModel):
    reason: Optional[str] = None


@router.post("/submit")
async def submit_payment_claim(
    request: SubmitClaimRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Attach a transaction id or proof to a pending payment.

    The reference code is the only credential needed.
    """
    reference_code = (request.reference_code or "").strip()
    if not reference_code:
        raise HTTPException(status_code=400, detail="Reference code is required")

    payment = await PaymentService(db).submit_claim(
        reference_code=reference_code,
        now=utcnow(),
        transaction_id=request.transaction_id or None,
        proof_url=request.proof_url or None,
    )
    if not payment:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    return {
        "success": True,
        "payment": {
            "id": str(payment.id),
            "reference_code": payment.reference_code,
            "status": payment.status,
        },
    }


@router.get("")
async def list_payments(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payments = await PaymentService(db).list_for_merchant(
        user.id, status=status, limit=limit, offset=offset
    )
    return {"payments": [payment_payload(p) for p in payments]}


@router.post("/{payment_id}/confirm")
async def confirm_payment(
    payment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm the money arrived; activates or renews the subscription."""
    result = await PaymentService(db).confirm_payment(
        payment_id=payment_id,
        merchant_id=user.id,
        now=utcnow(),
        confirmed_by=user.email,
    )
    if not result:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    payment, subscription = result
    return {
        "success": True,
        "payment": payment_payload(payment),
        "subscription": subscription,
    }


@router.post("/{payment_id}/reject")
async def reject_payment(
    payment_id: uuid.UUID,
    request: RejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await PaymentService(db).reject_payment(
        payment_id=payment_id,
        merchant_id=user.id,
        now=utcnow(),
        reason=request.reason,
    )
    if not payment:
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    return {"success": True, "payment": payment_payload(payment)}
