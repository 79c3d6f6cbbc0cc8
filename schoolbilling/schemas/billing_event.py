"""Billing event schemas.

Gateway webhooks are normalised into these types before the state machine sees
them, so the processor never handles raw gateway objects.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class BillingEventKind(str, Enum):
    """Webhook events the processor knows how to apply."""

    CHECKOUT_COMPLETED = "checkout_completed"
    INVOICE_PAID = "invoice_paid"
    INVOICE_PAYMENT_FAILED = "invoice_payment_failed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    UNRECOGNIZED = "unrecognized"


class WebhookOutcome(str, Enum):
    """What happened to a verified webhook event."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class CheckoutMetadata(BaseModel):
    """Correlation data carried from checkout to the completion webhook."""

    school_id: UUID
    plan_id: UUID
    requester_id: str = Field(..., min_length=1)

    def to_gateway(self) -> Dict[str, str]:
        """Flatten to the string map the gateway stores."""
        return {
            "school_id": str(self.school_id),
            "plan_id": str(self.plan_id),
            "requester_id": self.requester_id,
        }


class CheckoutCompletedPayload(BaseModel):
    """A completed checkout session."""

    session_id: str
    external_ref: str = Field(..., description="Subscription id, else pi_/cs_ fallback")
    metadata: CheckoutMetadata
    customer_ref: Optional[str] = None


class InvoicePayload(BaseModel):
    """An invoice paid or failed for a gateway subscription."""

    invoice_id: str
    subscription_ref: Optional[str] = None
    billing_reason: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class GatewaySubscriptionPayload(BaseModel):
    """A subscription object as reported by the gateway."""

    subscription_ref: str
    status: str
    cancel_at_period_end: bool = False
    cancel_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


BillingEventPayload = Union[CheckoutCompletedPayload, InvoicePayload, GatewaySubscriptionPayload]


class BillingEvent(BaseModel):
    """A verified, normalised webhook event."""

    event_id: str
    event_type: str = Field(..., description="Gateway event type, e.g. invoice.paid")
    kind: BillingEventKind
    payload: Optional[BillingEventPayload] = None


class WebhookAck(BaseModel):
    """Response body acknowledging a webhook delivery."""

    received: bool = True
    outcome: WebhookOutcome
