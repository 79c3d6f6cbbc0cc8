"""Checkout schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SubscribeRequest(BaseModel):
    """Body of a subscribe request."""

    plan_id: UUID = Field(..., description="Plan the school wants to subscribe to")


class CheckoutSessionResponse(BaseModel):
    """Hosted checkout session the client should redirect to."""

    session_id: str
    checkout_url: str


class CheckoutLineItem(BaseModel):
    """Recurring price charged by a checkout session."""

    name: str
    description: Optional[str] = None
    unit_amount: int = Field(..., ge=0, description="Amount in minor units (cents)")
    currency: str = Field(..., description="Lower-case ISO 4217 code")
    interval: str = Field(..., description="Recurring interval: month or year")
    interval_count: int = 1
