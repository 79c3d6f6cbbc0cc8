"""Subscription plan schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BillingCycle(str, Enum):
    """Billing cycles found in the plan catalog.

    Only MONTHLY and YEARLY can be billed; ONE_TIME exists in the catalog but
    is rejected by the period calculator.
    """

    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    ONE_TIME = "ONE_TIME"


class SubscriptionPlanBase(BaseModel):
    """Base subscription plan schema."""

    name: str = Field(..., description="Plan name shown on checkout")
    price: Decimal = Field(..., ge=0, description="Price per billing cycle")
    currency: str = Field(..., min_length=3, max_length=3, description="ISO 4217 currency code")
    billing_cycle: str = Field(..., description="MONTHLY, YEARLY or ONE_TIME")
    features: List[str] = Field(default_factory=list)
    max_students: Optional[int] = None
    max_teachers: Optional[int] = None
    is_active: bool = True


class SubscriptionPlanCreate(SubscriptionPlanBase):
    """Schema for seeding a subscription plan."""

    pass


class SubscriptionPlan(SubscriptionPlanBase):
    """Subscription plan in the database."""

    model_config = {"from_attributes": True}

    id: UUID
    created_at: datetime
    modified_at: datetime
