"""Payment gate - tracks the payment state of priced registrations.

The provider does the actual payment processing. This service creates
intents, records their outcome and auto-approves registrations whose config
does not require a vendor decision.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple

import stripe
from sqlmodel import Session, select

from event_registration.auth.models import Actor
from event_registration.backends.payment_client import PaymentClient, PaymentIntentInfo
from event_registration.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentIntentMismatch,
    PaymentNotCompleted,
    PaymentProviderError,
)
from event_registration.models.event import Event
from event_registration.models.registration import (
    PaymentStatus,
    Registration,
    RegistrationStatus,
)
from event_registration.models.registration_config import RegistrationConfig
from event_registration.services.event_service import EventService
from event_registration.services.review_workflow import (
    TERMINAL_STATES,
    Party,
    WorkflowEvent,
    transition,
)

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for registration payment intents and their outcome"""

    def __init__(self, db_session: Session, payment_client: PaymentClient):
        self.db = db_session
        self.client = payment_client
        self.events = EventService(db_session)

    def _require_registration(self, registration_id: uuid.UUID) -> Registration:
        registration = self.db.get(Registration, registration_id)
        if not registration:
            raise NotFound("Registration not found")
        return registration

    @staticmethod
    def _ensure_owner(actor: Actor, registration: Registration) -> None:
        if actor.user_id != registration.participant_id and not actor.is_admin:
            raise Forbidden("Only the participant can pay for this registration")

    def _requires_approval(self, event_id: uuid.UUID) -> bool:
        config = self.db.exec(
            select(RegistrationConfig).where(RegistrationConfig.event_id == event_id)
        ).first()
        # Without a config there is nobody to opt out of review
        return config.requires_approval if config else True

    async def create_intent(
        self, registration: Registration, event: Event
    ) -> PaymentIntentInfo:
        """
        Request a payment intent for the event price and mark the payment pending.

        The registration is modified but not committed; the caller commits it
        together with the rest of the submission.

        Raises:
            PaymentProviderError: If the provider call fails
        """
        previous = registration.payment_intent_id or "initial"
        intent = await self.client.create_intent(
            amount=event.price,
            currency=event.currency,
            metadata={
                "registration_id": str(registration.id),
                "event_id": str(event.id),
                "participant_id": registration.participant_id,
            },
            idempotency_key=f"registration-{registration.id}-{previous}",
        )

        registration.payment_required = True
        registration.payment_status = PaymentStatus.PENDING
        registration.payment_amount = event.price
        registration.payment_currency = event.currency
        registration.payment_intent_id = intent.id
        return intent

    async def pending_intent(self, registration: Registration) -> Optional[PaymentIntentInfo]:
        """The registration's pending intent as the provider reports it, if any"""
        if registration.payment_status != PaymentStatus.PENDING or not registration.payment_intent_id:
            return None
        return await self.client.retrieve_intent(registration.payment_intent_id)

    async def confirm_payment(
        self,
        actor: Optional[Actor],
        registration_id: uuid.UUID,
        payment_intent_id: str,
    ) -> Registration:
        """
        Record a completed payment

        Args:
            actor: Paying participant, or None when called from the provider webhook
            registration_id: UUID of the registration
            payment_intent_id: Intent the provider reports as paid

        Returns:
            The updated registration

        Raises:
            NotFound: If the registration does not exist
            Forbidden: If the actor is not the participant
            PaymentIntentMismatch: If the intent is not the one on record
            PaymentNotCompleted: If the provider has not settled the intent
            InvalidTransition: If no payment is pending
        """
        registration = self._require_registration(registration_id)
        if actor is not None:
            self._ensure_owner(actor, registration)

        if not registration.payment_required:
            raise InvalidTransition("This registration does not require payment")
        if registration.payment_status == PaymentStatus.PAID:
            if registration.payment_intent_id == payment_intent_id:
                return registration
            raise PaymentIntentMismatch()
        if registration.payment_status != PaymentStatus.PENDING:
            raise InvalidTransition("No payment is pending for this registration")
        if registration.payment_intent_id != payment_intent_id:
            logger.warning(
                f"Payment intent {payment_intent_id} does not match registration {registration.id}"
            )
            raise PaymentIntentMismatch()

        intent = await self.client.retrieve_intent(payment_intent_id)
        if not intent.succeeded:
            logger.info(f"Payment intent {payment_intent_id} is {intent.status}, not confirming")
            raise PaymentNotCompleted()

        registration.payment_status = PaymentStatus.PAID
        registration.paid_at = datetime.now(timezone.utc)
        registration.updated_at = datetime.now(timezone.utc)

        if registration.status == RegistrationStatus.SUBMITTED and not self._requires_approval(
            registration.event_id
        ):
            transition(registration, WorkflowEvent.PAYMENT_SETTLED, Party.SYSTEM)

        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)

        logger.info(
            f"Payment confirmed for registration {registration.id} "
            f"(status {registration.status.value})"
        )
        return registration

    def mark_payment_failed(
        self, registration_id: uuid.UUID, payment_intent_id: str
    ) -> Registration:
        """Record a failed payment. The registration status is left unchanged."""
        registration = self._require_registration(registration_id)
        if registration.payment_intent_id != payment_intent_id:
            raise PaymentIntentMismatch()
        if registration.payment_status == PaymentStatus.FAILED:
            return registration
        if registration.payment_status != PaymentStatus.PENDING:
            raise InvalidTransition("No payment is pending for this registration")

        registration.payment_status = PaymentStatus.FAILED
        registration.updated_at = datetime.now(timezone.utc)
        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)

        logger.info(f"Payment failed for registration {registration.id}")
        return registration

    async def retry_payment(
        self, actor: Actor, registration_id: uuid.UUID
    ) -> Tuple[Registration, PaymentIntentInfo]:
        """
        Start a new payment attempt after a failed one

        Returns:
            The registration and the new intent (for its client secret)

        Raises:
            InvalidTransition: If the last attempt did not fail or the registration is closed
            PaymentProviderError: If the provider call fails
        """
        registration = self._require_registration(registration_id)
        self._ensure_owner(actor, registration)

        if registration.status in TERMINAL_STATES:
            raise InvalidTransition(
                f"Cannot pay for a registration that is {registration.status.value}"
            )
        if registration.payment_status != PaymentStatus.FAILED:
            raise InvalidTransition("Payment can only be retried after a failed attempt")

        event = self.events.require_event(registration.event_id)
        try:
            intent = await self.create_intent(registration, event)
        except PaymentProviderError:
            self.db.rollback()
            raise

        registration.updated_at = datetime.now(timezone.utc)
        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)

        logger.info(f"New payment intent {intent.id} for registration {registration.id}")
        return registration, intent

    async def handle_webhook_event(self, event: stripe.Event) -> None:
        await PaymentEventHandler(self).handle(event)


class PaymentEventHandler:
    """Routes provider webhook events to the payment gate"""

    def __init__(self, payment_service: PaymentService):
        self.payments = payment_service

    async def handle(self, event: stripe.Event) -> None:
        handler_method = getattr(
            self, f"handle_{event.type.replace('.', '_')}", self.handle_unknown_event
        )
        await handler_method(event)

    async def handle_unknown_event(self, event: stripe.Event) -> None:
        logger.info(f"Unhandled payment webhook event {event.type} ({event.id})")

    @staticmethod
    def _registration_id(intent) -> Optional[uuid.UUID]:
        metadata = intent.get("metadata") or {}
        try:
            return uuid.UUID(metadata.get("registration_id", ""))
        except ValueError:
            logger.warning(f"Payment intent {intent['id']} has no registration reference")
            return None

    async def handle_payment_intent_succeeded(self, event: stripe.Event) -> None:
        intent = event.data.object
        registration_id = self._registration_id(intent)
        if registration_id is None:
            return
        try:
            await self.payments.confirm_payment(None, registration_id, intent["id"])
        except (NotFound, InvalidTransition, PaymentIntentMismatch) as e:
            # Stale and replayed events are acknowledged
            logger.warning(f"Ignoring {event.type} for registration {registration_id}: {e}")

    async def handle_payment_intent_payment_failed(self, event: stripe.Event) -> None:
        intent = event.data.object
        registration_id = self._registration_id(intent)
        if registration_id is None:
            return
        try:
            self.payments.mark_payment_failed(registration_id, intent["id"])
        except (NotFound, InvalidTransition, PaymentIntentMismatch) as e:
            logger.warning(f"Ignoring {event.type} for registration {registration_id}: {e}")
