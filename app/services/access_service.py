"""
Access Service - answers "may this customer use this product right now?".
"""

import uuid
import logging
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.product import Price, Product

logger = logging.getLogger(__name__)

# Implemented in the database; it owns the grace-period rules
ACCESS_INFO_QUERY = text(
    "SELECT * FROM get_subscription_access_info(:p_product_id, :p_customer_phone)"
)


class AccessService:
    """Service behind the v1 product and access endpoints."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_products(self, merchant_id: uuid.UUID) -> list[Product]:
        """Merchant's active products, newest first, with only active prices kept."""
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.prices))
            .where(Product.merchant_id == merchant_id)
            .where(Product.is_active.is_(True))
            .order_by(Product.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_owned_product(self, product_id: uuid.UUID, merchant_id: uuid.UUID) -> Optional[Product]:
        product = await self.db.get(Product, product_id)
        if not product or product.merchant_id != merchant_id:
            return None
        return product

    async def fetch_access_info(self, product_id: uuid.UUID, customer_phone: str) -> Optional[dict]:
        result = await self.db.execute(
            ACCESS_INFO_QUERY,
            {"p_product_id": str(product_id), "p_customer_phone": customer_phone},
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def check_access(self, product_id: uuid.UUID, customer_phone: str) -> dict:
        info = await self.fetch_access_info(product_id, customer_phone)
        if not info:
            return {
                "has_access": False,
                "subscription": None,
                "message": "No subscription found for this customer",
            }

        return {
            "has_access": bool(info.get("has_access")),
            "subscription": {
                "id": str(info["subscription_id"]) if info.get("subscription_id") else None,
                "status": info.get("status"),
                "current_period_end": info.get("current_period_end"),
                "grace_period_end": info.get("grace_period_end"),
                "days_remaining": info.get("days_remaining"),
                "is_renewable": info.get("is_renewable"),
                "product_type": info.get("product_type"),
            },
        }


def active_prices(product: Product) -> list[Price]:
    return [price for price in product.prices if price.is_active]
