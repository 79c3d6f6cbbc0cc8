"""Webhook processor for payment gateway billing events.

Verified events are normalised into BillingEvents by the gateway client and
applied to school subscriptions here. Deliveries are at-least-once and may
arrive out of order, so every handler is idempotent and acknowledges events it
cannot apply instead of inventing state.
"""

from datetime import datetime
from typing import Callable, Optional

from schoolbilling import schemas
from schoolbilling.billing.periods import BillingPeriodWindow, compute_period
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.core.datetime_utils import utc_now_naive
from schoolbilling.core.exceptions import (
    BillingConfigurationError,
    BillingValidationError,
    ConflictError,
    NotFoundException,
    TransientStoreError,
    UnsupportedBillingCycleError,
    UnverifiedSignatureError,
)
from schoolbilling.core.logging import ContextualLogger, logger
from schoolbilling.integrations.stripe_client import StripeClient
from schoolbilling.models import SchoolSubscription, SubscriptionPlan
from schoolbilling.schemas.billing_event import BillingEvent, BillingEventKind, WebhookOutcome
from schoolbilling.schemas.school_subscription import SubscriptionStatus

# Only renewals move the billing period forward
RENEWAL_BILLING_REASON = "subscription_cycle"

# Gateway subscription status -> internal status; anything else keeps the current status
GATEWAY_STATUSES = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "trialing": SubscriptionStatus.TRIALING,
    "canceled": SubscriptionStatus.CANCELED,
}


class BillingWebhookProcessor:
    """Apply verified gateway webhook events to school subscriptions."""

    def __init__(
        self,
        repository: SubscriptionRepository,
        gateway: StripeClient,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        """Initialize webhook processor.

        Args:
            repository: Subscription store for this delivery
            gateway: Client that verifies and normalises webhook payloads
            clock: Source of "now", naive UTC
        """
        self.repository = repository
        self.gateway = gateway
        self.clock = clock

        # Event handler mapping
        self.handlers = {
            BillingEventKind.CHECKOUT_COMPLETED: self._handle_checkout_completed,
            BillingEventKind.INVOICE_PAID: self._handle_invoice_paid,
            BillingEventKind.INVOICE_PAYMENT_FAILED: self._handle_payment_failed,
            BillingEventKind.SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            BillingEventKind.SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
        }

    async def handle(self, raw_payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """Verify one webhook delivery and apply it.

        Args:
            raw_payload: The request body exactly as received
            signature: The Stripe-Signature header, if any

        Returns:
            PROCESSED, DUPLICATE or IGNORED; all of them should be acknowledged

        Raises:
            UnverifiedSignatureError: Signature missing or invalid, nothing was touched
            BillingValidationError: Correlation metadata missing, a permanent rejection
            NotFoundException: The plan or school named by the event does not exist
            BillingConfigurationError: The plan cannot be billed (e.g. unsupported cycle)
            ConflictError: A subscription invariant would be broken
            TransientStoreError: The database is unavailable, the gateway should retry
        """
        try:
            event = self.gateway.parse_webhook_event(raw_payload, signature)
        except UnverifiedSignatureError as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            raise
        except BillingValidationError as e:
            logger.with_context(error_type="integration").error(f"Malformed webhook event: {e}")
            raise

        log = logger.with_context(
            auth_method="stripe_webhook",
            gateway_event_id=event.event_id,
            gateway_event_type=event.event_type,
        )
        log.info(f"Received webhook event: {event.event_type}")

        handler = self.handlers.get(event.kind)
        if handler is None:
            log.info(f"Unhandled webhook event type: {event.event_type}")
            return WebhookOutcome.IGNORED

        try:
            outcome = await handler(event, log)
        except BillingConfigurationError as e:
            plan_id = getattr(e, "plan_id", None)
            log.with_context(error_type="configuration", plan_id=str(plan_id)).error(
                f"Cannot bill plan {plan_id} for event {event.event_id}: {e}"
            )
            raise
        except (BillingValidationError, NotFoundException) as e:
            log.with_context(error_type="integration").error(
                f"Rejected {event.event_type} event {event.event_id}: {e}"
            )
            raise
        except (ConflictError, TransientStoreError) as e:
            log.error(f"Could not apply {event.event_type} event {event.event_id}: {e}")
            raise

        log.info(f"Webhook event {event.event_id} {outcome.value}")
        return outcome

    # Helpers

    def _period_for(self, plan: SubscriptionPlan, start: datetime) -> BillingPeriodWindow:
        """Compute a period, attaching the plan id to configuration errors."""
        try:
            return compute_period(plan.billing_cycle, start)
        except UnsupportedBillingCycleError as e:
            raise UnsupportedBillingCycleError(plan.billing_cycle, plan_id=plan.id) from e

    async def _find_by_ref(
        self, external_ref: Optional[str], log: ContextualLogger
    ) -> Optional[SchoolSubscription]:
        """Load the row for a gateway reference, logging when it does not exist yet."""
        if not external_ref:
            log.info("Event carries no gateway subscription reference")
            return None

        subscription = await self.repository.get_by_external_ref(external_ref)
        if subscription is None:
            # Checkout completion has not been processed yet, or the subscription
            # was created outside this application
            log.warning(f"No school subscription for gateway reference {external_ref}")
        return subscription

    def _not_before_start(self, subscription: SchoolSubscription, value: datetime) -> datetime:
        return max(value, subscription.current_period_start)

    # Event handlers

    async def _handle_checkout_completed(
        self, event: BillingEvent, log: ContextualLogger
    ) -> WebhookOutcome:
        """Replace the school's subscription with the one just paid for."""
        payload: schemas.CheckoutCompletedPayload = event.payload
        metadata = payload.metadata
        log = log.with_context(school_id=str(metadata.school_id), plan_id=str(metadata.plan_id))

        existing = await self.repository.get_by_external_ref(payload.external_ref)
        if existing is not None:
            log.info(f"Gateway reference {payload.external_ref} already processed")
            return WebhookOutcome.DUPLICATE

        plan = await self.repository.get_plan(metadata.plan_id)
        if plan is None:
            raise NotFoundException(f"Plan {metadata.plan_id} not found.")

        now = self.clock()
        window = self._period_for(plan, now)
        status = SubscriptionStatus.TRIALING if plan.price == 0 else SubscriptionStatus.ACTIVE

        obj_in = schemas.SchoolSubscriptionCreate(
            school_id=metadata.school_id,
            plan_id=plan.id,
            status=status,
            current_period_start=window.start,
            next_billing_date=window.next_billing_date,
            end_date=window.end_date,
            external_gateway_ref=payload.external_ref,
            created_at=now,
        )

        try:
            subscription = await self.repository.replace_active(
                metadata.school_id,
                obj_in,
                ended_at=now,
                customer_ref=payload.customer_ref,
            )
        except ConflictError:
            # A concurrent delivery of the same event may have committed first
            if await self.repository.get_by_external_ref(payload.external_ref) is not None:
                log.info(f"Gateway reference {payload.external_ref} committed concurrently")
                return WebhookOutcome.DUPLICATE
            raise

        log.info(
            f"Created {status.value} subscription {subscription.id} "
            f"(gateway reference {payload.external_ref}), next billing {window.next_billing_date}"
        )
        return WebhookOutcome.PROCESSED

    async def _handle_invoice_paid(
        self, event: BillingEvent, log: ContextualLogger
    ) -> WebhookOutcome:
        """Advance the billing period on a renewal payment."""
        payload: schemas.InvoicePayload = event.payload

        if payload.billing_reason != RENEWAL_BILLING_REASON:
            log.info(f"Invoice {payload.invoice_id} is not a renewal ({payload.billing_reason})")
            return WebhookOutcome.IGNORED

        subscription = await self._find_by_ref(payload.subscription_ref, log)
        if subscription is None:
            return WebhookOutcome.IGNORED

        log = log.with_context(school_id=str(subscription.school_id))
        current = SubscriptionStatus(subscription.status)
        if current not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE):
            log.warning(f"Renewal for subscription {subscription.id} in status {current.value}")
            return WebhookOutcome.IGNORED

        if payload.period_end is None:
            log.warning(f"Renewal invoice {payload.invoice_id} has no period end")
            return WebhookOutcome.IGNORED

        plan = await self.repository.get_plan(subscription.plan_id)
        if plan is None:
            raise NotFoundException(f"Plan {subscription.plan_id} not found.")

        window = self._period_for(plan, payload.period_end)
        await self.repository.update_by_external_ref(
            payload.subscription_ref,
            schemas.SchoolSubscriptionUpdate(
                status=SubscriptionStatus.ACTIVE,
                current_period_start=window.start,
                next_billing_date=window.next_billing_date,
                end_date=None,
            ),
        )
        log.info(
            f"Renewed subscription {subscription.id}: {current.value} -> ACTIVE, "
            f"next billing {window.next_billing_date}"
        )
        return WebhookOutcome.PROCESSED

    async def _handle_payment_failed(
        self, event: BillingEvent, log: ContextualLogger
    ) -> WebhookOutcome:
        """Mark an active subscription past due."""
        payload: schemas.InvoicePayload = event.payload

        subscription = await self._find_by_ref(payload.subscription_ref, log)
        if subscription is None:
            return WebhookOutcome.IGNORED

        log = log.with_context(school_id=str(subscription.school_id))
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            log.info(f"Payment failed for subscription {subscription.id} in {subscription.status}")
            return WebhookOutcome.IGNORED

        await self.repository.update_by_external_ref(
            payload.subscription_ref,
            schemas.SchoolSubscriptionUpdate(status=SubscriptionStatus.PAST_DUE),
        )
        log.info(f"Subscription {subscription.id}: ACTIVE -> PAST_DUE")
        return WebhookOutcome.PROCESSED

    async def _handle_subscription_updated(
        self, event: BillingEvent, log: ContextualLogger
    ) -> WebhookOutcome:
        """Mirror status, scheduled cancellation and billing date from the gateway."""
        payload: schemas.GatewaySubscriptionPayload = event.payload

        subscription = await self._find_by_ref(payload.subscription_ref, log)
        if subscription is None:
            return WebhookOutcome.IGNORED

        log = log.with_context(school_id=str(subscription.school_id))
        if subscription.status == SubscriptionStatus.CANCELED.value:
            # Superseded or ended rows are never reopened
            log.info(f"Subscription {subscription.id} is already canceled")
            return WebhookOutcome.IGNORED

        patch = {}
        mapped_status = GATEWAY_STATUSES.get(payload.status)

        if mapped_status == SubscriptionStatus.CANCELED:
            patch["status"] = SubscriptionStatus.CANCELED
            patch["end_date"] = self._not_before_start(
                subscription, payload.ended_at or self.clock()
            )
        else:
            if mapped_status is not None:
                patch["status"] = mapped_status

            scheduled_end = payload.cancel_at
            if scheduled_end is None and payload.cancel_at_period_end:
                scheduled_end = payload.current_period_end

            if scheduled_end is not None:
                patch["end_date"] = self._not_before_start(subscription, scheduled_end)
            elif subscription.end_date is not None:
                # Scheduled cancellation was withdrawn
                patch["end_date"] = None

        if payload.current_period_end is not None:
            if payload.current_period_end >= subscription.current_period_start:
                patch["next_billing_date"] = payload.current_period_end
            else:
                log.warning(
                    f"Ignoring period end {payload.current_period_end} before period start "
                    f"{subscription.current_period_start}"
                )

        previous = subscription.status
        await self.repository.update_by_external_ref(
            payload.subscription_ref, schemas.SchoolSubscriptionUpdate(**patch)
        )
        log.info(
            f"Updated subscription {subscription.id} from gateway status {payload.status}: "
            f"{previous} -> {patch.get('status', SubscriptionStatus(previous)).value}"
        )
        return WebhookOutcome.PROCESSED

    async def _handle_subscription_deleted(
        self, event: BillingEvent, log: ContextualLogger
    ) -> WebhookOutcome:
        """Cancel the subscription the gateway has ended."""
        payload: schemas.GatewaySubscriptionPayload = event.payload

        subscription = await self._find_by_ref(payload.subscription_ref, log)
        if subscription is None:
            return WebhookOutcome.IGNORED

        log = log.with_context(school_id=str(subscription.school_id))
        if subscription.status == SubscriptionStatus.CANCELED.value:
            log.info(f"Subscription {subscription.id} is already canceled")
            return WebhookOutcome.IGNORED

        previous = subscription.status
        end_date = self._not_before_start(subscription, payload.ended_at or self.clock())
        await self.repository.update_by_external_ref(
            payload.subscription_ref,
            schemas.SchoolSubscriptionUpdate(status=SubscriptionStatus.CANCELED, end_date=end_date),
        )
        log.info(f"Subscription {subscription.id}: {previous} -> CANCELED, ended {end_date}")
        return WebhookOutcome.PROCESSED
