"""CRUD operations for the application."""

from .crud_school import school
from .crud_school_subscription import school_subscription
from .crud_subscription_plan import subscription_plan

__all__ = [
    "school",
    "school_subscription",
    "subscription_plan",
]
