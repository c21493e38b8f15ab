"""Vendor review decisions and withdrawals"""

import enum
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from event_registration.auth.models import Actor
from event_registration.errors import Forbidden, NotFound
from event_registration.models.event import Event
from event_registration.models.registration import Registration
from event_registration.services.event_service import EventService
from event_registration.services.review_workflow import Party, WorkflowEvent, transition

logger = logging.getLogger(__name__)


class ReviewDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


_DECISION_EVENTS = {
    ReviewDecision.APPROVED: WorkflowEvent.APPROVE,
    ReviewDecision.REJECTED: WorkflowEvent.REJECT,
}


class ReviewService:
    """Service applying review workflow transitions on behalf of an actor"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.events = EventService(db_session)

    def _load(self, registration_id: uuid.UUID) -> tuple[Registration, Event]:
        registration = self.db.get(Registration, registration_id)
        if not registration:
            raise NotFound("Registration not found")
        return registration, self.events.require_event(registration.event_id)

    def _save(self, registration: Registration) -> Registration:
        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)
        return registration

    def start_review(self, actor: Actor, registration_id: uuid.UUID) -> Registration:
        """Move a submitted registration into the vendor's review queue"""
        registration, event = self._load(registration_id)
        self.events.ensure_event_vendor(actor, event)

        transition(registration, WorkflowEvent.START_REVIEW, Party.VENDOR)
        self._save(registration)

        logger.info(f"Review started for registration {registration.id} by {actor.user_id}")
        return registration

    def review(
        self,
        actor: Actor,
        registration_id: uuid.UUID,
        decision: ReviewDecision,
        remarks: Optional[str] = None,
    ) -> Registration:
        """
        Approve or reject a registration

        The decision, its time, the reviewer and the remarks are stored in
        one commit.

        Args:
            actor: Vendor of the event (or admin)
            registration_id: UUID of the registration
            decision: approved or rejected
            remarks: Optional note shown to the participant

        Returns:
            The reviewed registration

        Raises:
            Forbidden: If the actor does not manage the event
            InvalidTransition: If the registration is not awaiting review
            PaymentRequired: If approving before a required payment is settled
        """
        registration, event = self._load(registration_id)
        self.events.ensure_event_vendor(actor, event)

        transition(registration, _DECISION_EVENTS[decision], Party.VENDOR)
        registration.reviewed_at = datetime.now(timezone.utc)
        registration.reviewed_by = actor.user_id
        registration.review_remarks = remarks
        self._save(registration)

        logger.info(f"Registration {registration.id} {decision.value} by {actor.user_id}")
        return registration

    def withdraw(
        self, actor: Actor, registration_id: uuid.UUID, reason: Optional[str] = None
    ) -> Registration:
        """Withdraw a registration as its participant or as the event vendor"""
        registration, event = self._load(registration_id)
        if registration.participant_id == actor.user_id:
            party = Party.PARTICIPANT
        elif self.events.is_event_vendor(actor, event):
            party = Party.VENDOR
        else:
            raise Forbidden("You cannot withdraw this registration")

        transition(registration, WorkflowEvent.WITHDRAW, party)
        registration.withdrawal_reason = reason
        self._save(registration)

        logger.info(
            f"Registration {registration.id} withdrawn by {party.value} {actor.user_id}"
        )
        return registration
