"""Submission engine - turns participant answers into registrations"""

import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlmodel import Session, func, select

from event_registration.auth.models import Actor
from event_registration.backends.payment_client import PaymentClient, PaymentIntentInfo
from event_registration.backends.storage_client import StorageClient
from event_registration.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentProviderError,
    RegistrationClosed,
    RegistrationDisabled,
    ValidationFailed,
)
from event_registration.models.event import Event
from event_registration.models.files import FileReference, FileUpload
from event_registration.models.form_field import FormFieldSpec, dump_fields
from event_registration.models.registration import (
    PaymentStatus,
    Registration,
    RegistrationStatus,
)
from event_registration.models.registration_config import RegistrationConfig
from event_registration.services.event_service import EventService
from event_registration.services.field_validator import (
    normalize_answers,
    validate_answers,
    visible_file_fields,
)
from event_registration.services.payment_service import PaymentService
from event_registration.services.registration_config_service import (
    RegistrationConfigService,
)
from event_registration.services.review_workflow import (
    ACTIVE_STATES,
    EDITABLE_STATES,
    Party,
    WorkflowEvent,
    allowed_events,
    transition,
)

logger = logging.getLogger(__name__)

CONFIRMATION_ALPHABET = string.ascii_uppercase + string.digits


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class SubmissionResult:
    registration: Registration
    event: Event
    config: RegistrationConfig
    payment: Optional[PaymentIntentInfo] = None
    # True when an already active registration was returned unchanged
    resubmitted: bool = False

    @property
    def client_secret(self) -> Optional[str]:
        return self.payment.client_secret if self.payment else None


class RegistrationService:
    """Service for submitting, editing and reading registrations"""

    def __init__(
        self,
        db_session: Session,
        payment_client: PaymentClient,
        storage_client: StorageClient,
    ):
        self.db = db_session
        self.storage = storage_client
        self.events = EventService(db_session)
        self.configs = RegistrationConfigService(db_session)
        self.payments = PaymentService(db_session, payment_client)

    def _require_registration(self, registration_id: uuid.UUID) -> Registration:
        registration = self.db.get(Registration, registration_id)
        if not registration:
            raise NotFound("Registration not found")
        return registration

    def _find_open_registration(
        self, event_id: uuid.UUID, participant_id: str
    ) -> Optional[Registration]:
        """Latest draft or active registration of the participant for the event"""
        stmt = (
            select(Registration)
            .where(
                Registration.event_id == event_id,
                Registration.participant_id == participant_id,
                Registration.status.in_([RegistrationStatus.DRAFT, *ACTIVE_STATES]),
            )
            .order_by(Registration.created_at.desc())
        )
        return self.db.exec(stmt).first()

    def count_active(self, event_id: uuid.UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(Registration)
            .where(
                Registration.event_id == event_id,
                Registration.status.in_(list(ACTIVE_STATES)),
            )
        )
        return self.db.exec(stmt).one()

    def _ensure_accepting(self, config: RegistrationConfig) -> None:
        """
        Check the deadline and capacity of a config

        Raises:
            RegistrationClosed: If the deadline has passed or the event is full
        """
        if config.registration_deadline and datetime.now(timezone.utc) > _as_utc(
            config.registration_deadline
        ):
            raise RegistrationClosed("The registration deadline has passed")
        if config.max_registrations and self.count_active(config.event_id) >= config.max_registrations:
            raise RegistrationClosed("This event is fully booked")

    def _confirmation_number(self) -> str:
        """Generate a confirmation number like REG-20240131-7KQ2ZD, unique among registrations"""
        prefix = f"REG-{datetime.now(timezone.utc):%Y%m%d}-"
        while True:
            candidate = prefix + "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(6))
            taken = self.db.exec(
                select(Registration.id).where(Registration.confirmation_number == candidate)
            ).first()
            if not taken:
                return candidate

    @staticmethod
    def _carried_files(registration: Registration, fields: List[FormFieldSpec]) -> Dict[str, dict]:
        """Earlier uploads that still answer a field of the given field set"""
        field_ids = {field.id for field in fields}
        return {
            field_id: reference
            for field_id, reference in (registration.files or {}).items()
            if field_id in field_ids
        }

    async def _store_files(
        self,
        registration: Registration,
        fields: List[FormFieldSpec],
        answers: Mapping[str, Any],
        uploads: Mapping[str, FileUpload],
    ) -> Dict[str, dict]:
        """Upload new files and keep earlier ones for the file fields still visible"""
        visible = visible_file_fields(fields, answers)
        stored = dict(registration.files or {})
        files: Dict[str, dict] = {}
        for field_id in visible:
            upload = uploads.get(field_id)
            if upload is not None:
                reference = await self.storage.upload(field_id, upload)
                files[field_id] = reference.model_dump(mode="json")
            elif field_id in stored:
                files[field_id] = stored[field_id]
        return files

    async def submit(
        self,
        actor: Actor,
        event_id: uuid.UUID,
        answers: Mapping[str, Any],
        files: Optional[Mapping[str, FileUpload]] = None,
        as_draft: bool = False,
    ) -> SubmissionResult:
        """
        Submit (or save as draft) a participant's answers for an event.

        A participant has at most one open registration per event: an existing
        draft is updated in place, and a final submit over an already active
        registration returns it unchanged.

        Args:
            actor: Participant submitting the form
            event_id: UUID of the event
            answers: Field id -> raw answer
            files: Field id -> uploaded file
            as_draft: Save without the required check, payment or review

        Returns:
            SubmissionResult with the payment intent for priced events

        Raises:
            NotFound: If the event or its config does not exist
            RegistrationDisabled: If the config is disabled
            RegistrationClosed: If the deadline passed or the event is full
            ValidationFailed: With every failing field
            StorageError, PaymentProviderError: If a backend call fails
        """
        files = files or {}
        event = self.events.require_event(event_id)
        config = self.configs.get_config(event_id)
        if not config.enabled:
            raise RegistrationDisabled()

        existing = self._find_open_registration(event_id, actor.user_id)
        if existing is not None and existing.status in ACTIVE_STATES:
            if as_draft:
                raise InvalidTransition("You have already submitted a registration for this event")
            logger.info(
                f"Participant {actor.user_id} resubmitted registration {existing.id}; returning it unchanged"
            )
            return SubmissionResult(
                registration=existing,
                event=event,
                config=config,
                payment=await self.payments.pending_intent(existing),
                resubmitted=True,
            )

        if not as_draft:
            self._ensure_accepting(config)

        fields = config.form_fields()
        registration = existing or Registration(
            event_id=event_id, participant_id=actor.user_id
        )
        candidate: Dict[str, Any] = {**self._carried_files(registration, fields), **answers, **files}

        errors = validate_answers(fields, candidate, partial=as_draft)
        if errors:
            logger.info(f"Submission for event {event_id} rejected: {len(errors)} invalid fields")
            raise ValidationFailed(errors)

        registration.participant_name = actor.name or registration.participant_name
        registration.participant_email = actor.email or registration.participant_email
        registration.answers = normalize_answers(fields, candidate)
        registration.files = await self._store_files(registration, fields, candidate, files)
        registration.updated_at = datetime.now(timezone.utc)

        payment = None
        if not as_draft:
            transition(
                registration,
                WorkflowEvent.SUBMIT,
                Party.PARTICIPANT,
                requires_approval=config.requires_approval,
            )
            registration.submitted_at = datetime.now(timezone.utc)
            registration.confirmation_number = self._confirmation_number()
            registration.field_snapshot = dump_fields(fields)
            if event.is_priced:
                try:
                    payment = await self.payments.create_intent(registration, event)
                except PaymentProviderError:
                    self.db.rollback()
                    raise
            else:
                registration.payment_required = False
                registration.payment_status = PaymentStatus.NONE

        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)

        if as_draft:
            logger.info(f"Draft {registration.id} saved for event {event_id}")
        else:
            logger.info(
                f"Registration {registration.id} submitted for event {event_id} "
                f"({registration.confirmation_number}, status {registration.status.value})"
            )
        return SubmissionResult(
            registration=registration, event=event, config=config, payment=payment
        )

    async def update_registration(
        self,
        actor: Actor,
        registration_id: uuid.UUID,
        answers: Mapping[str, Any],
        files: Optional[Mapping[str, FileUpload]] = None,
    ) -> Registration:
        """
        Edit the answers of a draft or a submitted registration.

        Drafts are checked partially against the event's current config;
        submitted registrations fully against the field set they were
        submitted with.

        Raises:
            Forbidden: If the actor is not the participant
            InvalidTransition: If the registration is no longer editable
            ValidationFailed: With every failing field
        """
        files = files or {}
        registration = self._require_registration(registration_id)
        if registration.participant_id != actor.user_id:
            raise Forbidden("Only the participant can edit this registration")
        if registration.status not in EDITABLE_STATES:
            raise InvalidTransition(
                f"A registration that is {registration.status.value.replace('_', ' ')} can no longer be edited"
            )

        is_draft = registration.status == RegistrationStatus.DRAFT
        if is_draft:
            fields = self.configs.get_config(registration.event_id).form_fields()
        else:
            fields = registration.snapshot_fields()

        candidate: Dict[str, Any] = {**self._carried_files(registration, fields), **answers, **files}
        errors = validate_answers(fields, candidate, partial=is_draft)
        if errors:
            raise ValidationFailed(errors)

        registration.answers = normalize_answers(fields, candidate)
        registration.files = await self._store_files(registration, fields, candidate, files)
        registration.updated_at = datetime.now(timezone.utc)

        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)

        logger.info(f"Registration {registration.id} updated by participant")
        return registration

    def can_view(self, actor: Actor, registration: Registration) -> bool:
        if actor.is_admin or registration.participant_id == actor.user_id:
            return True
        event = self.events.get_event_by_id(registration.event_id)
        return event is not None and self.events.is_event_vendor(actor, event)

    def get_registration(self, actor: Actor, registration_id: uuid.UUID) -> Registration:
        """Get a registration visible to the participant, the event vendor or an admin"""
        registration = self._require_registration(registration_id)
        if not self.can_view(actor, registration):
            raise Forbidden("You cannot view this registration")
        return registration

    def available_actions(self, actor: Actor, registration: Registration) -> List[WorkflowEvent]:
        """Workflow events the actor may fire on the registration in its current status"""
        parties = []
        if registration.participant_id == actor.user_id:
            parties.append(Party.PARTICIPANT)
        event = self.events.get_event_by_id(registration.event_id)
        if event is not None and self.events.is_event_vendor(actor, event):
            parties.append(Party.VENDOR)
        return allowed_events(registration.status, parties)

    def get_file(
        self, actor: Actor, registration_id: uuid.UUID, file_id: str
    ) -> FileReference:
        registration = self.get_registration(actor, registration_id)
        for reference in registration.file_references().values():
            if reference.file_id == file_id:
                return reference
        raise NotFound("File not found")
