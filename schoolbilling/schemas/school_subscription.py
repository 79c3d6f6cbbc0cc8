"""School subscription schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from schoolbilling.core.datetime_utils import utc_now_naive
from schoolbilling.schemas.subscription_plan import SubscriptionPlan


class SubscriptionStatus(str, Enum):
    """Status of a school subscription."""

    ACTIVE = "ACTIVE"  # Paid and within its period
    TRIALING = "TRIALING"  # Free plan, no payment required
    PAST_DUE = "PAST_DUE"  # Renewal payment failed, gateway is retrying
    CANCELED = "CANCELED"  # Superseded or ended at the gateway
    INACTIVE = "INACTIVE"


# At most one row per school may be in one of these
ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

# Rows that are superseded when a school checks out again
REPLACEABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)


class SchoolSubscriptionBase(BaseModel):
    """Base school subscription schema."""

    school_id: UUID = Field(..., description="School this subscription belongs to")
    plan_id: UUID = Field(..., description="Subscribed plan")
    status: SubscriptionStatus = Field(..., description="Subscription status")
    current_period_start: datetime = Field(..., description="Start of the current period")
    next_billing_date: datetime = Field(..., description="When the next charge is due")
    end_date: Optional[datetime] = Field(None, description="Termination instant, if any")


class SchoolSubscriptionCreate(SchoolSubscriptionBase):
    """Schema for creating a school subscription."""

    model_config = {"use_enum_values": True}

    external_gateway_ref: Optional[str] = Field(
        None, description="Gateway subscription id, or pi_/cs_ fallback"
    )
    created_at: datetime = Field(
        default_factory=utc_now_naive, description="Orders rows when resolving the current one"
    )


class SchoolSubscriptionUpdate(BaseModel):
    """Partial update applied by the webhook processor."""

    model_config = {"use_enum_values": True}

    status: Optional[SubscriptionStatus] = None
    current_period_start: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SchoolSubscriptionInDBBase(SchoolSubscriptionBase):
    """Base schema for school subscription in database."""

    model_config = {"from_attributes": True}

    id: UUID
    external_gateway_ref: Optional[str] = None
    created_at: datetime
    modified_at: datetime


class SchoolSubscription(SchoolSubscriptionInDBBase):
    """School subscription returned to clients."""

    pass


class SchoolSubscriptionWithPlan(SchoolSubscription):
    """School subscription together with its plan."""

    plan: SubscriptionPlan


class CurrentSubscription(BaseModel):
    """The subscription that currently entitles a school to service."""

    subscription: SchoolSubscription
    plan: SubscriptionPlan
