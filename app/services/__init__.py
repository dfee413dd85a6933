"""Services package."""

from app.services.access_service import AccessService
from app.services.api_key_service import ApiKeyService, ApiAuthResult
from app.services.notification_service import NotificationService
from app.services.payment_service import PaymentService
from app.services.platform_notifier import PlatformNotifier
from app.services.portal_service import PortalService
from app.services.reminder_service import ReminderService
from app.services.renewal_service import RenewalService
from app.services.subscription_service import SubscriptionService
from app.services.webhook_service import WebhookDispatcher, WebhookService

__all__ = [
    "AccessService",
    "ApiKeyService",
    "ApiAuthResult",
    "NotificationService",
    "PaymentService",
    "PlatformNotifier",
    "PortalService",
    "ReminderService",
    "RenewalService",
    "SubscriptionService",
    "WebhookDispatcher",
    "WebhookService",
]
