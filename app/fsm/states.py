"""
State and vocabulary definitions for payments, subscriptions and catalog.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    """
    Payment lifecycle.
    pending -> matched (claim submitted) -> confirmed / rejected,
    or pending -> expired (sweeper).
    """

    PENDING = "pending"
    MATCHED = "matched"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXPIRED = "expired"


class PaymentType(str, Enum):
    INITIAL = "initial"
    RENEWAL = "renewal"


class PaymentMethod(str, Enum):
    MTN_MOMO = "mtn_momo"
    BANK_TRANSFER = "bank_transfer"
    # Renewal invoices before the customer picks a method
    PENDING = "pending"


class SubscriptionStatus(str, Enum):
    """Subscription statuses. Transitions are guarded in app.fsm.machine."""

    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    REACTIVATE = "reactivate"


class Currency(str, Enum):
    SSP = "SSP"
    USD = "USD"


class BillingCycle(str, Enum):
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ProductType(str, Enum):
    SUBSCRIPTION = "subscription"
    DIGITAL_PRODUCT = "digital_product"
    ONE_TIME = "one_time"


class UserRole(str, Enum):
    MERCHANT = "merchant"
    ADMIN = "admin"


class WebhookEvent(str, Enum):
    """Event names merchants can subscribe their endpoints to."""

    PAYMENT_CREATED = "payment.created"
    PAYMENT_MATCHED = "payment.matched"
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_REJECTED = "payment.rejected"
    PAYMENT_EXPIRED = "payment.expired"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    SUBSCRIPTION_EXPIRED = "subscription.expired"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"


class NotificationType(str, Enum):
    """In-app notification types."""

    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_CONFIRMED = "payment_confirmed"
    NEW_SUBSCRIBER = "new_subscriber"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_EXPIRING = "subscription_expiring"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
