"""Unit tests for the billing webhook processor."""

import uuid
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from schoolbilling import crud, schemas
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.billing.resolver import CurrentSubscriptionResolver
from schoolbilling.billing.webhook_processor import BillingWebhookProcessor
from schoolbilling.core.exceptions import (
    BillingValidationError,
    ConflictError,
    NotFoundException,
    UnsupportedBillingCycleError,
    UnverifiedSignatureError,
)
from schoolbilling.schemas import BillingEvent, BillingEventKind, WebhookOutcome

JAN_15 = datetime(2025, 1, 15, 9, 30)
FEB_15 = datetime(2025, 2, 15, 9, 30)
MAR_15 = datetime(2025, 3, 15, 9, 30)


def checkout_completed(school_id, plan_id, external_ref="sub_A", event_id="evt_checkout_1"):
    return BillingEvent(
        event_id=event_id,
        event_type="checkout.session.completed",
        kind=BillingEventKind.CHECKOUT_COMPLETED,
        payload=schemas.CheckoutCompletedPayload(
            session_id="cs_test_1",
            external_ref=external_ref,
            metadata=schemas.CheckoutMetadata(
                school_id=school_id, plan_id=plan_id, requester_id="user-42"
            ),
            customer_ref="cus_123",
        ),
    )


def invoice_event(kind, subscription_ref="sub_A", billing_reason="subscription_cycle", **kwargs):
    event_type = "invoice.paid" if kind == BillingEventKind.INVOICE_PAID else "invoice.payment_failed"
    return BillingEvent(
        event_id=f"evt_{uuid.uuid4().hex[:8]}",
        event_type=event_type,
        kind=kind,
        payload=schemas.InvoicePayload(
            invoice_id="in_1",
            subscription_ref=subscription_ref,
            billing_reason=billing_reason,
            **kwargs,
        ),
    )


def subscription_event(kind, subscription_ref="sub_A", status="active", **kwargs):
    event_type = (
        "customer.subscription.updated"
        if kind == BillingEventKind.SUBSCRIPTION_UPDATED
        else "customer.subscription.deleted"
    )
    return BillingEvent(
        event_id=f"evt_{uuid.uuid4().hex[:8]}",
        event_type=event_type,
        kind=kind,
        payload=schemas.GatewaySubscriptionPayload(
            subscription_ref=subscription_ref, status=status, **kwargs
        ),
    )


@pytest.fixture
def repository(db_session):
    return SubscriptionRepository(db_session)


@pytest.fixture
def processor(repository, gateway, clock):
    return BillingWebhookProcessor(repository, gateway, clock=clock)


async def deliver(processor, event):
    processor.gateway.parse_webhook_event.return_value = event
    return await processor.handle(b'{"id": "evt"}', "t=1,v1=signature")


async def subscribe(processor, school, plan, external_ref="sub_A"):
    outcome = await deliver(processor, checkout_completed(school.id, plan.id, external_ref))
    assert outcome == WebhookOutcome.PROCESSED
    return await processor.repository.get_by_external_ref(external_ref)


# Checkout completed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_creates_active_subscription(
    processor, repository, db_session, school, monthly_plan
):
    subscription = await subscribe(processor, school, monthly_plan)

    assert subscription.school_id == school.id
    assert subscription.plan_id == monthly_plan.id
    assert subscription.status == "ACTIVE"
    assert subscription.current_period_start == JAN_15
    assert subscription.next_billing_date == FEB_15
    assert subscription.end_date is None

    assert await crud.school.get_gateway_customer_ref(db_session, school_id=school.id) == "cus_123"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_for_free_plan_is_trialing(processor, school, free_plan):
    subscription = await subscribe(processor, school, free_plan)

    assert subscription.status == "TRIALING"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_stamps_created_at_from_clock(
    processor, clock, school, monthly_plan, yearly_plan
):
    first = await subscribe(processor, school, monthly_plan, "sub_A")
    clock.set(FEB_15)
    second = await subscribe(processor, school, yearly_plan, "sub_B")

    assert first.created_at == JAN_15
    assert second.created_at == FEB_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_for_yearly_plan(processor, school, yearly_plan):
    subscription = await subscribe(processor, school, yearly_plan)

    assert subscription.next_billing_date == datetime(2026, 1, 15, 9, 30)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_replay_is_a_duplicate(processor, repository, school, monthly_plan):
    event = checkout_completed(school.id, monthly_plan.id)

    assert await deliver(processor, event) == WebhookOutcome.PROCESSED
    assert await deliver(processor, event) == WebhookOutcome.DUPLICATE

    assert await repository.count(school_id=school.id) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_for_unknown_plan(processor, repository, school):
    with pytest.raises(NotFoundException):
        await deliver(processor, checkout_completed(school.id, uuid.uuid4()))

    assert await repository.count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_for_unknown_school(processor, repository, monthly_plan):
    with pytest.raises(NotFoundException, match="School not found."):
        await deliver(processor, checkout_completed(uuid.uuid4(), monthly_plan.id))

    assert await repository.count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_with_unbillable_cycle_is_fatal_for_the_event(
    processor, repository, school, one_time_plan
):
    with pytest.raises(UnsupportedBillingCycleError) as exc_info:
        await deliver(processor, checkout_completed(school.id, one_time_plan.id))

    assert exc_info.value.plan_id == one_time_plan.id
    assert await repository.count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_committed_concurrently_is_a_duplicate(school, monthly_plan):
    repository = MagicMock()
    existing = MagicMock()
    repository.get_by_external_ref = AsyncMock(side_effect=[None, existing])
    repository.get_plan = AsyncMock(return_value=monthly_plan)
    repository.replace_active = AsyncMock(side_effect=ConflictError())
    gateway = MagicMock()
    gateway.parse_webhook_event.return_value = checkout_completed(school.id, monthly_plan.id)
    processor = BillingWebhookProcessor(repository, gateway, clock=lambda: JAN_15)

    assert await processor.handle(b"{}", "sig") == WebhookOutcome.DUPLICATE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_checkout_completed_conflict_without_duplicate_propagates(school, monthly_plan):
    repository = MagicMock()
    repository.get_by_external_ref = AsyncMock(return_value=None)
    repository.get_plan = AsyncMock(return_value=monthly_plan)
    repository.replace_active = AsyncMock(side_effect=ConflictError())
    gateway = MagicMock()
    gateway.parse_webhook_event.return_value = checkout_completed(school.id, monthly_plan.id)
    processor = BillingWebhookProcessor(repository, gateway, clock=lambda: JAN_15)

    with pytest.raises(ConflictError):
        await processor.handle(b"{}", "sig")


# Plan change: the old gateway subscription keeps sending events


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plan_change_supersedes_previous_subscription(
    processor, repository, clock, school, monthly_plan, yearly_plan
):
    plan_a = await subscribe(processor, school, monthly_plan, "sub_A")

    clock.set(FEB_15)
    plan_b = await subscribe(processor, school, yearly_plan, "sub_B")

    plan_a = await repository.get_by_external_ref("sub_A")
    assert plan_a.status == "CANCELED"
    assert plan_a.end_date == FEB_15
    assert plan_b.status == "ACTIVE"
    assert plan_b.current_period_start == FEB_15
    assert plan_b.next_billing_date == datetime(2026, 2, 15, 9, 30)

    # The gateway winds down the old subscription afterwards
    updated = subscription_event(BillingEventKind.SUBSCRIPTION_UPDATED, "sub_A", status="active")
    deleted = subscription_event(BillingEventKind.SUBSCRIPTION_DELETED, "sub_A", status="canceled")
    assert await deliver(processor, updated) == WebhookOutcome.IGNORED
    assert await deliver(processor, deleted) == WebhookOutcome.IGNORED

    plan_a = await repository.get_by_external_ref("sub_A")
    assert plan_a.status == "CANCELED"
    assert plan_a.end_date == FEB_15

    current = await CurrentSubscriptionResolver(repository).find_current(school.id, now=MAR_15)
    assert current.subscription.external_gateway_ref == "sub_B"
    assert current.plan.id == yearly_plan.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plan_change_cancels_past_due_subscription(
    processor, repository, clock, school, monthly_plan, yearly_plan
):
    await subscribe(processor, school, monthly_plan, "sub_A")
    await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAYMENT_FAILED, "sub_A"))

    clock.set(FEB_15)
    await subscribe(processor, school, yearly_plan, "sub_B")

    assert (await repository.get_by_external_ref("sub_A")).status == "CANCELED"


# Invoice paid


@pytest.mark.unit
@pytest.mark.asyncio
async def test_renewal_advances_the_period(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    outcome = await deliver(
        processor,
        invoice_event(BillingEventKind.INVOICE_PAID, period_start=JAN_15, period_end=FEB_15),
    )

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert outcome == WebhookOutcome.PROCESSED
    assert subscription.status == "ACTIVE"
    assert subscription.current_period_start == FEB_15
    assert subscription.next_billing_date == MAR_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_renewal_recovers_past_due_subscription(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)
    await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAYMENT_FAILED))

    await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAID, period_end=FEB_15))

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert subscription.status == "ACTIVE"
    assert subscription.next_billing_date == MAR_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_first_invoice_does_not_move_the_period(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    outcome = await deliver(
        processor,
        invoice_event(
            BillingEventKind.INVOICE_PAID,
            billing_reason="subscription_create",
            period_end=FEB_15,
        ),
    )

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert outcome == WebhookOutcome.IGNORED
    assert subscription.current_period_start == JAN_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invoice_before_checkout_completion_is_ignored(processor, repository, school):
    outcome = await deliver(
        processor, invoice_event(BillingEventKind.INVOICE_PAID, period_end=FEB_15)
    )

    assert outcome == WebhookOutcome.IGNORED
    assert await repository.count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_renewal_of_trialing_subscription_is_ignored(processor, school, free_plan):
    await subscribe(processor, school, free_plan)

    outcome = await deliver(
        processor, invoice_event(BillingEventKind.INVOICE_PAID, period_end=FEB_15)
    )

    assert outcome == WebhookOutcome.IGNORED
    assert (await processor.repository.get_by_external_ref("sub_A")).status == "TRIALING"


# Invoice payment failed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_payment_failure_marks_active_subscription_past_due(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    outcome = await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAYMENT_FAILED))

    assert outcome == WebhookOutcome.PROCESSED
    assert (await processor.repository.get_by_external_ref("sub_A")).status == "PAST_DUE"

    # Gateway retries of the failure change nothing
    replay = await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAYMENT_FAILED))
    assert replay == WebhookOutcome.IGNORED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_payment_failure_for_trialing_subscription_is_ignored(processor, school, free_plan):
    await subscribe(processor, school, free_plan)

    outcome = await deliver(processor, invoice_event(BillingEventKind.INVOICE_PAYMENT_FAILED))

    assert outcome == WebhookOutcome.IGNORED
    assert (await processor.repository.get_by_external_ref("sub_A")).status == "TRIALING"


# Subscription updated


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscription_update_mirrors_gateway_status(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    outcome = await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_UPDATED, status="past_due", current_period_end=FEB_15
        ),
    )

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert outcome == WebhookOutcome.PROCESSED
    assert subscription.status == "PAST_DUE"
    assert subscription.next_billing_date == FEB_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scheduled_cancellation_is_recorded_and_can_be_withdrawn(
    processor, school, monthly_plan
):
    await subscribe(processor, school, monthly_plan)

    await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_UPDATED,
            cancel_at_period_end=True,
            current_period_end=FEB_15,
        ),
    )
    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert subscription.status == "ACTIVE"
    assert subscription.end_date == FEB_15

    await deliver(
        processor,
        subscription_event(BillingEventKind.SUBSCRIPTION_UPDATED, current_period_end=FEB_15),
    )
    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert subscription.end_date is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_explicit_cancel_at_wins_over_period_end(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)
    cancel_at = datetime(2025, 2, 1)

    await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_UPDATED,
            cancel_at=cancel_at,
            cancel_at_period_end=True,
            current_period_end=FEB_15,
        ),
    )

    assert (await processor.repository.get_by_external_ref("sub_A")).end_date == cancel_at


@pytest.mark.unit
@pytest.mark.asyncio
async def test_canceled_status_ends_the_subscription(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)
    ended_at = datetime(2025, 1, 20)

    await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_UPDATED, status="canceled", ended_at=ended_at
        ),
    )

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert subscription.status == "CANCELED"
    assert subscription.end_date == ended_at


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_gateway_status_keeps_current_status(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    outcome = await deliver(
        processor,
        subscription_event(BillingEventKind.SUBSCRIPTION_UPDATED, status="incomplete"),
    )

    assert outcome == WebhookOutcome.PROCESSED
    assert (await processor.repository.get_by_external_ref("sub_A")).status == "ACTIVE"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_period_end_before_period_start_is_not_applied(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_UPDATED, current_period_end=datetime(2024, 12, 15)
        ),
    )

    assert (await processor.repository.get_by_external_ref("sub_A")).next_billing_date == FEB_15


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_for_unknown_subscription_is_ignored(processor, school):
    outcome = await deliver(
        processor, subscription_event(BillingEventKind.SUBSCRIPTION_UPDATED, "sub_elsewhere")
    )

    assert outcome == WebhookOutcome.IGNORED


# Subscription deleted


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscription_deleted_cancels(processor, clock, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)
    clock.set(FEB_15)

    event = subscription_event(BillingEventKind.SUBSCRIPTION_DELETED, status="canceled")
    assert await deliver(processor, event) == WebhookOutcome.PROCESSED

    subscription = await processor.repository.get_by_external_ref("sub_A")
    assert subscription.status == "CANCELED"
    assert subscription.end_date == FEB_15

    assert await deliver(processor, event) == WebhookOutcome.IGNORED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscription_deleted_never_ends_before_period_start(processor, school, monthly_plan):
    await subscribe(processor, school, monthly_plan)

    await deliver(
        processor,
        subscription_event(
            BillingEventKind.SUBSCRIPTION_DELETED,
            status="canceled",
            ended_at=datetime(2025, 1, 1),
        ),
    )

    assert (await processor.repository.get_by_external_ref("sub_A")).end_date == JAN_15


# Delivery-level behaviour


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unverified_signature_is_rejected_before_any_write(processor, repository, school):
    processor.gateway.parse_webhook_event.side_effect = UnverifiedSignatureError()

    with pytest.raises(UnverifiedSignatureError):
        await processor.handle(b"{}", "t=1,v1=forged")

    assert await repository.count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_correlation_metadata_is_rejected(processor):
    processor.gateway.parse_webhook_event.side_effect = BillingValidationError(
        "Checkout session cs_1 is missing metadata: school_id"
    )

    with pytest.raises(BillingValidationError):
        await processor.handle(b"{}", "sig")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unrecognized_event_is_acknowledged(processor):
    event = BillingEvent(
        event_id="evt_1", event_type="customer.created", kind=BillingEventKind.UNRECOGNIZED
    )

    assert await deliver(processor, event) == WebhookOutcome.IGNORED
