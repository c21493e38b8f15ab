"""Stripe client for registration payment intents"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import stripe
from fastapi.concurrency import run_in_threadpool

from event_registration.errors import PaymentProviderError

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentInfo:
    id: str
    client_secret: Optional[str]
    status: str
    amount: int = 0  # smallest currency unit
    currency: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def from_stripe(cls, intent) -> "PaymentIntentInfo":
        return cls(
            id=intent["id"],
            client_secret=intent.get("client_secret"),
            status=intent["status"],
            amount=intent.get("amount") or 0,
            currency=intent.get("currency"),
        )


def to_minor_units(amount: float) -> int:
    """Stripe amounts are integers in the currency's smallest unit"""
    return int(round(amount * 100))


class PaymentClient:
    """Thin wrapper over the synchronous Stripe SDK.

    SDK calls block, so they run in the thread pool to keep the event loop free.
    Provider errors are logged in full and surfaced as ``PaymentProviderError``.
    """

    def __init__(self, config: dict):
        self.api_key = config["stripe_secret_key"]
        self.webhook_secret = config.get("stripe_webhook_secret")

    async def create_intent(
        self,
        amount: float,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentInfo:
        """
        Create a payment intent

        Args:
            amount: Amount in major units (e.g. dollars)
            currency: ISO currency code
            metadata: Attached to the intent and echoed back in webhooks
            idempotency_key: Makes a repeated request return the same intent

        Returns:
            PaymentIntentInfo with the client secret for the participant
        """
        params = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
            "api_key": self.api_key,
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = await run_in_threadpool(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e}")
            raise PaymentProviderError() from e

        logger.info(f"Created payment intent {intent['id']} for {amount} {currency}")
        return PaymentIntentInfo.from_stripe(intent)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntentInfo:
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent lookup failed for {intent_id}: {e}")
            raise PaymentProviderError() from e
        return PaymentIntentInfo.from_stripe(intent)

    def construct_event(self, payload: bytes, sig_header: str) -> stripe.Event:
        """
        Verify a webhook signature and parse the event

        Raises:
            ValueError: If the payload is not valid JSON
            stripe.SignatureVerificationError: If the signature does not match
        """
        return stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
