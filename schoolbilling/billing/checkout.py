"""Start a hosted checkout for a school subscription.

Checkout never writes a subscription row: the row is created when the gateway
reports the completed session through the webhook.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import crud, schemas
from schoolbilling.billing.periods import gateway_interval, to_minor_units
from schoolbilling.core.exceptions import ExternalServiceError, NotFoundException
from schoolbilling.core.logging import ContextualLogger, logger
from schoolbilling.integrations.stripe_client import StripeClient
from schoolbilling.models import School, SubscriptionPlan


class CheckoutInitiator:
    """Creates gateway checkout sessions for school admins."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeClient,
        app_url: str,
        log: Optional[ContextualLogger] = None,
    ):
        """Initialize the checkout initiator.

        Args:
            db: Database session
            gateway: Payment gateway client
            app_url: Base URL of the web app, used for the redirect URLs
            log: Contextual logger, defaults to the module logger
        """
        self.db = db
        self.gateway = gateway
        self.app_url = app_url.rstrip("/")
        self.log = log or logger

    async def start_checkout(
        self, school_id: UUID, plan_id: UUID, requester: schemas.Requester
    ) -> schemas.CheckoutSessionResponse:
        """Create a checkout session for a school and plan.

        Args:
            school_id: School that will be billed
            plan_id: Plan to subscribe to
            requester: Admin starting the checkout

        Returns:
            The session id and the URL to redirect the admin to

        Raises:
            NotFoundException: If the school is missing, or the plan is missing or inactive
            UnsupportedBillingCycleError: If the plan cannot be billed on a recurring cycle
            ExternalServiceError: If the gateway fails or returns no checkout URL
        """
        school = await crud.school.get(self.db, school_id)
        if school is None:
            raise NotFoundException("School not found.")

        plan = await crud.subscription_plan.get_active(self.db, plan_id=plan_id)
        if plan is None:
            raise NotFoundException("Selected subscription plan not found or is not active.")

        log = self.log.with_context(school_id=str(school_id), plan_id=str(plan_id))

        # Resolve the interval before any gateway side effect
        line_item = self._line_item(plan, school)

        customer_ref = await self._ensure_customer(school, requester, log)

        metadata = schemas.CheckoutMetadata(
            school_id=school_id, plan_id=plan_id, requester_id=requester.id
        )
        payment_base = f"{self.app_url}/schools/{school_id}/admin/payment"
        session = await self.gateway.create_checkout_session(
            customer_id=customer_ref,
            line_item=line_item,
            success_url=f"{payment_base}/success",
            cancel_url=f"{payment_base}/cancel",
            metadata=metadata.to_gateway(),
        )

        if not session.url:
            log.error(f"Checkout session {session.id} was created without a URL")
            raise ExternalServiceError(
                service_name="Stripe", message="Could not create checkout session."
            )

        log.info(f"Created checkout session {session.id}")
        return schemas.CheckoutSessionResponse(session_id=session.id, checkout_url=session.url)

    def _line_item(self, plan: SubscriptionPlan, school: School) -> schemas.CheckoutLineItem:
        return schemas.CheckoutLineItem(
            name=plan.name,
            description=f"Subscription to {plan.name} for {school.name}",
            unit_amount=to_minor_units(plan.price),
            currency=plan.currency.lower(),
            interval=gateway_interval(plan.billing_cycle),
        )

    async def _ensure_customer(
        self, school: School, requester: schemas.Requester, log: ContextualLogger
    ) -> str:
        """Return the school's gateway customer, creating it on first checkout.

        The reference is only ever written while it is NULL. If a concurrent
        checkout stored one first, that one wins and the customer created here
        is left unused at the gateway.
        """
        if school.payment_gateway_customer_ref:
            return school.payment_gateway_customer_ref

        customer = await self.gateway.create_customer(
            email=requester.email,
            name=school.name,
            metadata={"school_id": str(school.id)},
        )

        stored = await crud.school.set_gateway_customer_ref_if_missing(
            self.db, school_id=school.id, customer_ref=customer.id
        )
        if stored:
            log.info(f"Created gateway customer {customer.id}")
            return customer.id

        existing_ref = await crud.school.get_gateway_customer_ref(self.db, school_id=school.id)
        log.warning(
            f"Gateway customer {customer.id} lost a concurrent checkout race; "
            f"using stored customer {existing_ref}"
        )
        return existing_ref
