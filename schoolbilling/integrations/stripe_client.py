"""Stripe API client for billing operations.

This module provides a clean interface to the Stripe API, handling all direct
Stripe interactions without business logic.
"""

import json
from typing import Any, Dict, Optional

import stripe

from schoolbilling.core.config import settings
from schoolbilling.core.exceptions import (
    BillingConfigurationError,
    BillingValidationError,
    ExternalServiceError,
    UnverifiedSignatureError,
)
from schoolbilling.integrations.stripe_events import to_billing_event
from schoolbilling.schemas.billing_event import BillingEvent
from schoolbilling.schemas.checkout import CheckoutLineItem


class StripeClient:
    """Client for Stripe API operations."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """Initialize Stripe client.

        Args:
            api_key: Secret API key, defaults to STRIPE_SECRET_KEY
            webhook_secret: Webhook signing secret, defaults to STRIPE_WEBHOOK_SECRET
        """
        api_key = api_key or settings.STRIPE_SECRET_KEY
        if not api_key:
            raise ValueError("Stripe is not configured: STRIPE_SECRET_KEY is empty")

        stripe.api_key = api_key
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    def _sanitize_text(self, text: Optional[str]) -> Optional[str]:
        """Sanitize text for Stripe API (ASCII-only)."""
        if not text:
            return text
        return text.encode("ascii", "replace").decode("ascii")

    def _clean_metadata(self, metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
        """Clean metadata values for Stripe."""
        if not metadata:
            return {}

        return {
            self._sanitize_text(str(key)): self._sanitize_text(str(value))
            for key, value in metadata.items()
        }

    # Customer operations

    async def create_customer(
        self,
        email: Optional[str],
        name: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> stripe.Customer:
        """Create a Stripe customer."""
        try:
            params: Dict[str, Any] = {
                "name": self._sanitize_text(name),
                "metadata": self._clean_metadata(metadata),
            }
            if email:
                params["email"] = self._sanitize_text(email)

            return await stripe.Customer.create_async(**params)
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to create customer: {str(e)}",
            ) from e

    # Checkout operations

    async def create_checkout_session(
        self,
        customer_id: str,
        line_item: CheckoutLineItem,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> stripe.checkout.Session:
        """Create a subscription checkout session with an inline recurring price.

        The metadata is copied onto the subscription the session spawns, so
        later subscription events can be traced back to the school.
        """
        try:
            clean_metadata = self._clean_metadata(metadata)
            product_data: Dict[str, Any] = {"name": self._sanitize_text(line_item.name)}
            if line_item.description:
                product_data["description"] = self._sanitize_text(line_item.description)

            return await stripe.checkout.Session.create_async(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": line_item.currency,
                            "product_data": product_data,
                            "unit_amount": line_item.unit_amount,
                            "recurring": {
                                "interval": line_item.interval,
                                "interval_count": line_item.interval_count,
                            },
                        },
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=self._sanitize_text(success_url),
                cancel_url=self._sanitize_text(cancel_url),
                metadata=clean_metadata,
                subscription_data={
                    "metadata": clean_metadata,
                },
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to create checkout session: {str(e)}",
            ) from e

    # Webhook operations

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> stripe.Event:
        """Verify and construct webhook event."""
        if not self.webhook_secret:
            raise BillingConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise UnverifiedSignatureError("Missing Stripe-Signature header")

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise UnverifiedSignatureError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise UnverifiedSignatureError(f"Invalid webhook signature: {e}") from e

    def parse_webhook_event(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        """Verify a webhook delivery and normalise it into a BillingEvent.

        Raises:
            UnverifiedSignatureError: If the signature is missing or wrong
            BillingConfigurationError: If no webhook secret is configured
            BillingValidationError: If a known event lacks correlation data
        """
        self.verify_webhook_signature(payload, signature)

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            body = json.loads(payload)
        except ValueError as e:
            raise BillingValidationError(f"Webhook body is not JSON: {e}") from e

        return to_billing_event(body)


# Singleton instance
stripe_client = StripeClient() if settings.STRIPE_ENABLED else None
