"""FSM package for payment and subscription state management."""

from app.fsm.states import PaymentStatus, SubscriptionStatus, SubscriptionAction, WebhookEvent

__all__ = ["PaymentStatus", "SubscriptionStatus", "SubscriptionAction", "WebhookEvent"]
