"""
Subscription state machine with strict, guarded transitions.
"""

import logging
from datetime import datetime
from typing import Optional

from app.fsm.states import SubscriptionAction, SubscriptionStatus
from app.models.subscription import Subscription
from app.periods import add_months

logger = logging.getLogger(__name__)


class InvalidTransitionError(ValueError):
    """Raised when an action is not allowed from the current status."""


# action -> (allowed source statuses, rejection message)
TRANSITIONS = {
    SubscriptionAction.PAUSE: (
        frozenset({SubscriptionStatus.ACTIVE}),
        "Only active subscriptions can be paused",
    ),
    SubscriptionAction.RESUME: (
        frozenset({SubscriptionStatus.PAUSED}),
        "Only paused subscriptions can be resumed",
    ),
    SubscriptionAction.CANCEL: (
        frozenset(SubscriptionStatus) - {SubscriptionStatus.CANCELLED},
        "Subscription is already cancelled",
    ),
    SubscriptionAction.REACTIVATE: (
        frozenset({SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED}),
        "Only cancelled or expired subscriptions can be reactivated",
    ),
}


def can_transition(status: str, action: SubscriptionAction) -> bool:
    allowed, _ = TRANSITIONS[action]
    return SubscriptionStatus(status) in allowed


def apply_action(
    subscription: Subscription,
    action: SubscriptionAction,
    now: datetime,
    resume_at: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> None:
    """
    Validate and apply a lifecycle action to a subscription in place.

    Raises InvalidTransitionError when the current status does not allow it.
    """
    allowed, message = TRANSITIONS[action]
    if SubscriptionStatus(subscription.status) not in allowed:
        raise InvalidTransitionError(message)

    previous = subscription.status

    if action == SubscriptionAction.PAUSE:
        subscription.status = SubscriptionStatus.PAUSED.value
        subscription.paused_at = now
        subscription.resume_at = resume_at

    elif action == SubscriptionAction.RESUME:
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.paused_at = None
        subscription.resume_at = None

    elif action == SubscriptionAction.CANCEL:
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = now
        subscription.cancelled_reason = reason

    elif action == SubscriptionAction.REACTIVATE:
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.cancelled_at = None
        subscription.cancelled_reason = None
        subscription.current_period_start = now
        subscription.current_period_end = add_months(now, 1)

    subscription.updated_at = now
    logger.info(f"Subscription {subscription.id}: {previous} -> {subscription.status} ({action.value})")
