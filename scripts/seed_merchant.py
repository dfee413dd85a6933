"""
Seed a demo merchant with a product, prices and an API key.
Run: python scripts/seed_merchant.py
"""

import asyncio
import sys
import os
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from app.database import get_db_context
from app.models.product import Product, Price
from app.models.user import User
from app.services.api_key_service import ApiKeyService

DEMO_EMAIL = "demo-merchant@losetify.com"

PRICES_DATA = [
    {"name": "Monthly", "amount": Decimal("15000"), "currency": "SSP", "billing_cycle": "monthly"},
    {"name": "Yearly", "amount": Decimal("150000"), "currency": "SSP", "billing_cycle": "yearly"},
    {"name": "Monthly (USD)", "amount": Decimal("10"), "currency": "USD", "billing_cycle": "monthly", "trial_days": 7},
]


async def seed_merchant():
    """Seed the demo merchant into the database."""
    async with get_db_context() as db:
        result = await db.execute(select(User).where(User.email == DEMO_EMAIL))
        if result.scalar_one_or_none():
            print("Demo merchant already seeded. Skipping.")
            return

        merchant = User(
            email=DEMO_EMAIL,
            full_name="Demo Merchant",
            business_name="Juba Streaming",
            phone="0912000000",
            mtn_momo_number="0920000000",
            bank_name="Equity Bank South Sudan",
            bank_account_number="0011223344",
            bank_account_name="Juba Streaming Ltd",
        )
        db.add(merchant)
        await db.flush()

        product = Product(merchant_id=merchant.id, name="Premium Streaming")
        db.add(product)
        await db.flush()

        for price_data in PRICES_DATA:
            db.add(Price(product_id=product.id, **price_data))
            print(f"  Added price: {price_data['name']}")

        _, secret_key = await ApiKeyService(db).create_key(merchant.id, "Demo")

        print(f"\nMerchant id: {merchant.id}")
        print(f"Secret key (shown once): {secret_key}")


if __name__ == "__main__":
    print("Seeding demo merchant...\n")
    asyncio.run(seed_merchant())
