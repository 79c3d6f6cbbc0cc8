"""Payment gateway webhook endpoint."""

from typing import Optional

from fastapi import Depends, Header, Request

from schoolbilling import schemas
from schoolbilling.api import deps
from schoolbilling.api.router import TrailingSlashRouter
from schoolbilling.billing.webhook_processor import BillingWebhookProcessor

router = TrailingSlashRouter()


@router.post("/webhook", response_model=schemas.WebhookAck, include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    processor: BillingWebhookProcessor = Depends(deps.get_webhook_processor),
) -> schemas.WebhookAck:
    """Handle Stripe webhook events.

    The raw body is verified against the Stripe-Signature header before
    anything else happens. Status codes tell Stripe whether to redeliver:

    - 200: applied, duplicate or deliberately ignored
    - 400: unverifiable signature or malformed metadata (no retry)
    - 404: the plan or school named by the event does not exist
    - 409: the event would break a subscription invariant
    - 500: configuration error, e.g. an unsupported billing cycle
    - 503: database unavailable (retry)

    Args:
        request: Raw HTTP request
        stripe_signature: Stripe signature header
        processor: Webhook processor bound to this request's session

    Returns:
        Acknowledgement with the processing outcome
    """
    payload = await request.body()
    outcome = await processor.handle(payload, stripe_signature)
    return schemas.WebhookAck(outcome=outcome)
