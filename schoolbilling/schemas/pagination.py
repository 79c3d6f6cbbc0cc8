"""Pagination schemas."""

from typing import List

from pydantic import BaseModel, Field

from schoolbilling.schemas.school_subscription import SchoolSubscriptionWithPlan


class Pagination(BaseModel):
    """Page metadata for list responses."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total_count: int
    total_pages: int


class SchoolSubscriptionPage(BaseModel):
    """A page of school subscriptions."""

    data: List[SchoolSubscriptionWithPlan]
    pagination: Pagination
