"""Billing module.

Keeps each school's subscription record in step with the payment gateway:

- periods: billing period arithmetic per billing cycle
- repository: transactional subscription store
- checkout: hosted checkout initiation
- webhook_processor: the webhook driven state machine
- resolver: current subscription lookup
"""

from schoolbilling.billing.checkout import CheckoutInitiator
from schoolbilling.billing.periods import BillingPeriodWindow, compute_period
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.billing.resolver import CurrentSubscriptionResolver
from schoolbilling.billing.webhook_processor import BillingWebhookProcessor

__all__ = [
    "BillingPeriodWindow",
    "BillingWebhookProcessor",
    "CheckoutInitiator",
    "CurrentSubscriptionResolver",
    "SubscriptionRepository",
    "compute_period",
]
