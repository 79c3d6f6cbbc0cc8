# flake8: noqa: F401
"""Schemas for the application."""

from .auth import Requester, RequesterRole
from .billing_event import (
    BillingEvent,
    BillingEventKind,
    CheckoutCompletedPayload,
    CheckoutMetadata,
    GatewaySubscriptionPayload,
    InvoicePayload,
    WebhookAck,
    WebhookOutcome,
)
from .checkout import CheckoutLineItem, CheckoutSessionResponse, SubscribeRequest
from .pagination import Pagination, SchoolSubscriptionPage
from .school_subscription import (
    ENTITLED_STATUSES,
    REPLACEABLE_STATUSES,
    CurrentSubscription,
    SchoolSubscription,
    SchoolSubscriptionCreate,
    SchoolSubscriptionUpdate,
    SchoolSubscriptionWithPlan,
    SubscriptionStatus,
)
from .subscription_plan import BillingCycle, SubscriptionPlan, SubscriptionPlanCreate
