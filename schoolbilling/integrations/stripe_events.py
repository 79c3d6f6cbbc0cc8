"""Translate Stripe webhook events into billing events.

This is the only module that knows the shape of Stripe event objects. It is
handed the verified event body as a plain mapping and returns a BillingEvent
the webhook processor can apply without touching Stripe types.
"""

from typing import Any, Mapping, Optional

from pydantic import ValidationError

from schoolbilling.core.datetime_utils import from_unix_timestamp
from schoolbilling.core.exceptions import BillingValidationError
from schoolbilling.schemas.billing_event import (
    BillingEvent,
    BillingEventKind,
    CheckoutCompletedPayload,
    CheckoutMetadata,
    GatewaySubscriptionPayload,
    InvoicePayload,
)

EVENT_KINDS = {
    "checkout.session.completed": BillingEventKind.CHECKOUT_COMPLETED,
    "invoice.paid": BillingEventKind.INVOICE_PAID,
    # Older API versions only send payment_succeeded
    "invoice.payment_succeeded": BillingEventKind.INVOICE_PAID,
    "invoice.payment_failed": BillingEventKind.INVOICE_PAYMENT_FAILED,
    "customer.subscription.updated": BillingEventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": BillingEventKind.SUBSCRIPTION_DELETED,
}


def _ref(value: Any) -> Optional[str]:
    """Stripe sends either an id or an expanded object for references."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get("id")
    return str(value)


def external_ref_for_checkout(session: Mapping[str, Any]) -> Optional[str]:
    """Reference that identifies the subscription created by a checkout session.

    The gateway subscription id when there is one, else the payment intent
    prefixed with ``pi_``, else the session id prefixed with ``cs_``.
    """
    subscription_id = _ref(session.get("subscription"))
    if subscription_id:
        return subscription_id

    payment_intent = _ref(session.get("payment_intent"))
    if payment_intent:
        return f"pi_{payment_intent}"

    session_id = session.get("id")
    if session_id:
        return f"cs_{session_id}"
    return None


def _checkout_payload(session: Mapping[str, Any]) -> CheckoutCompletedPayload:
    session_id = session.get("id") or ""
    metadata = session.get("metadata") or {}

    missing = [
        key for key in ("school_id", "plan_id", "requester_id") if not metadata.get(key)
    ]
    if missing:
        raise BillingValidationError(
            f"Checkout session {session_id} is missing metadata: {', '.join(missing)}"
        )

    try:
        checkout_metadata = CheckoutMetadata(
            school_id=metadata["school_id"],
            plan_id=metadata["plan_id"],
            requester_id=metadata["requester_id"],
        )
    except ValidationError as e:
        raise BillingValidationError(
            f"Checkout session {session_id} carries malformed metadata"
        ) from e

    external_ref = external_ref_for_checkout(session)
    if external_ref is None:
        raise BillingValidationError("Checkout session event carries no session id")

    return CheckoutCompletedPayload(
        session_id=session_id,
        external_ref=external_ref,
        metadata=checkout_metadata,
        customer_ref=_ref(session.get("customer")),
    )


def _invoice_subscription_ref(invoice: Mapping[str, Any]) -> Optional[str]:
    subscription = _ref(invoice.get("subscription"))
    if subscription:
        return subscription

    # Newer API versions nest the subscription under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _ref(details.get("subscription"))


def _invoice_payload(invoice: Mapping[str, Any]) -> InvoicePayload:
    return InvoicePayload(
        invoice_id=invoice.get("id") or "",
        subscription_ref=_invoice_subscription_ref(invoice),
        billing_reason=invoice.get("billing_reason"),
        period_start=from_unix_timestamp(invoice.get("period_start")),
        period_end=from_unix_timestamp(invoice.get("period_end")),
    )


def _subscription_period_end(subscription: Mapping[str, Any]) -> Optional[int]:
    if subscription.get("current_period_end"):
        return subscription["current_period_end"]

    # Newer API versions report periods per subscription item
    items = (subscription.get("items") or {}).get("data") or []
    ends = [item.get("current_period_end") for item in items if item.get("current_period_end")]
    return max(ends) if ends else None


def _subscription_payload(subscription: Mapping[str, Any]) -> GatewaySubscriptionPayload:
    subscription_id = subscription.get("id")
    if not subscription_id:
        raise BillingValidationError("Subscription event carries no subscription id")

    return GatewaySubscriptionPayload(
        subscription_ref=subscription_id,
        status=subscription.get("status") or "",
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        cancel_at=from_unix_timestamp(subscription.get("cancel_at")),
        canceled_at=from_unix_timestamp(subscription.get("canceled_at")),
        ended_at=from_unix_timestamp(subscription.get("ended_at")),
        current_period_end=from_unix_timestamp(_subscription_period_end(subscription)),
    )


_PAYLOAD_BUILDERS = {
    BillingEventKind.CHECKOUT_COMPLETED: _checkout_payload,
    BillingEventKind.INVOICE_PAID: _invoice_payload,
    BillingEventKind.INVOICE_PAYMENT_FAILED: _invoice_payload,
    BillingEventKind.SUBSCRIPTION_UPDATED: _subscription_payload,
    BillingEventKind.SUBSCRIPTION_DELETED: _subscription_payload,
}


def to_billing_event(event: Mapping[str, Any]) -> BillingEvent:
    """Build a BillingEvent from a verified Stripe event body.

    Args:
        event: The decoded event JSON

    Returns:
        The normalised event; unknown types come back as UNRECOGNIZED

    Raises:
        BillingValidationError: If a known event lacks the data it needs
    """
    event_id = event.get("id") or ""
    event_type = event.get("type") or ""
    kind = EVENT_KINDS.get(event_type, BillingEventKind.UNRECOGNIZED)

    if kind == BillingEventKind.UNRECOGNIZED:
        return BillingEvent(event_id=event_id, event_type=event_type, kind=kind)

    data_object = (event.get("data") or {}).get("object")
    if not isinstance(data_object, Mapping):
        raise BillingValidationError(f"Event {event_id} ({event_type}) has no data object")

    return BillingEvent(
        event_id=event_id,
        event_type=event_type,
        kind=kind,
        payload=_PAYLOAD_BUILDERS[kind](data_object),
    )
