"""Models package for database models."""

from app.models.user import User
from app.models.product import Product, Price
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.models.webhook import Webhook, WebhookDelivery
from app.models.api_key import ApiKey
from app.models.notification import Notification, NotificationLog

__all__ = [
    "User",
    "Product",
    "Price",
    "Payment",
    "Subscription",
    "Webhook",
    "WebhookDelivery",
    "ApiKey",
    "Notification",
    "NotificationLog",
]
