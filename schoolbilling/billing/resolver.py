"""Resolve the subscription that currently entitles a school to service."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from schoolbilling import schemas
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.core.datetime_utils import to_naive_utc, utc_now_naive


class CurrentSubscriptionResolver:
    """Read-only lookup of a school's current subscription."""

    def __init__(self, repository: SubscriptionRepository):
        """Initialize the resolver."""
        self.repository = repository

    async def find_current(
        self, school_id: UUID, now: Optional[datetime] = None
    ) -> Optional[schemas.CurrentSubscription]:
        """Find the school's current subscription and its plan.

        Among ACTIVE or TRIALING rows whose period has started and that have not
        ended, the most recently created wins.

        Args:
            school_id: School ID
            now: Instant to evaluate, defaults to the current time

        Returns:
            The current subscription, or None when the school has no entitlement
        """
        at = to_naive_utc(now) if now is not None else utc_now_naive()
        found = await self.repository.find_current(school_id, at)
        if found is None:
            return None

        subscription, plan = found
        return schemas.CurrentSubscription(
            subscription=schemas.SchoolSubscription.model_validate(subscription),
            plan=schemas.SubscriptionPlan.model_validate(plan),
        )
