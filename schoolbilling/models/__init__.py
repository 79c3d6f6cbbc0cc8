"""Models for the application."""

from .school import School
from .school_subscription import SchoolSubscription
from .subscription_plan import SubscriptionPlan

__all__ = [
    "School",
    "SchoolSubscription",
    "SubscriptionPlan",
]
