"""
v1 Product Endpoints (API key).
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_api_merchant
from app.database import get_db
from app.models.product import Product
from app.periods import isoformat
from app.services.access_service import AccessService, active_prices

router = APIRouter()
logger = logging.getLogger(__name__)


def product_payload(product: Product) -> dict:
    return {
        "id": str(product.id),
        "name": product.name,
        "description": product.description,
        "product_type": product.product_type,
        "image_url": product.image_url,
        "created_at": isoformat(product.created_at),
        "prices": [
            {
                "id": str(price.id),
                "name": price.name,
                "amount": str(price.amount),
                "currency": price.currency,
                "billing_cycle": price.billing_cycle,
                "trial_days": price.trial_days,
            }
            for price in active_prices(product)
        ],
    }


@router.get("/products")
async def list_products(
    merchant_id=Depends(get_api_merchant),
    db: AsyncSession = Depends(get_db),
):
    products = await AccessService(db).list_active_products(merchant_id)
    return {"success": True, "products": [product_payload(p) for p in products]}
