"""Registration config store - vendor-authored form schemas, one per event"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlmodel import Session, select

from event_registration.auth.models import Actor
from event_registration.errors import Forbidden, InvalidSchema, NotFound
from event_registration.models.form_field import FormFieldSpec, dump_fields, parse_fields
from event_registration.models.registration_config import (
    EmailNotifications,
    RegistrationConfig,
)
from event_registration.services.event_service import EventService
from event_registration.services.field_validator import schema_errors

logger = logging.getLogger(__name__)


class RegistrationConfigUpdate(BaseModel):
    """Vendor payload for creating or updating a config.

    Attributes left out of the payload keep their stored value.
    """

    enabled: Optional[bool] = None
    fields: Optional[List[dict]] = None
    requires_approval: Optional[bool] = None
    email_notifications: Optional[EmailNotifications] = None
    max_registrations: Optional[int] = Field(default=None, ge=1)
    registration_deadline: Optional[datetime] = None


def _renumber(fields: List[FormFieldSpec]) -> List[FormFieldSpec]:
    """Sort by order and renumber contiguously from 0"""
    ordered = sorted(fields, key=lambda f: f.order)
    return [field.model_copy(update={"order": index}) for index, field in enumerate(ordered)]


class RegistrationConfigService:
    """Service for creating, duplicating and disabling registration configs"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.events = EventService(db_session)

    def get_config_for_event(self, event_id: uuid.UUID) -> Optional[RegistrationConfig]:
        stmt = select(RegistrationConfig).where(RegistrationConfig.event_id == event_id)
        return self.db.exec(stmt).first()

    def get_config(self, event_id: uuid.UUID) -> RegistrationConfig:
        """Get the config of an event or raise NotFound"""
        config = self.get_config_for_event(event_id)
        if not config:
            raise NotFound("Registration is not configured for this event")
        return config

    def check_fields(self, raw_fields: List[dict]) -> List[FormFieldSpec]:
        """
        Parse and check a vendor-supplied field set

        Raises:
            InvalidSchema: With every structural and referential problem found
        """
        try:
            fields = parse_fields(raw_fields)
        except ValidationError as e:
            problems = [
                f"fields.{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ]
            raise InvalidSchema(problems)

        problems = schema_errors(fields)
        if problems:
            raise InvalidSchema(problems)
        return fields

    def create_or_update_config(
        self, actor: Actor, event_id: uuid.UUID, payload: RegistrationConfigUpdate
    ) -> RegistrationConfig:
        """
        Create the event's config or update the attributes present in the payload

        Args:
            actor: Calling user; must manage the event
            event_id: UUID of the event
            payload: Attributes to set

        Returns:
            The stored config

        Raises:
            NotFound: If the event does not exist
            Forbidden: If the actor does not manage the event
            InvalidSchema: If the field set is invalid
        """
        event = self.events.require_event(event_id)
        self.events.ensure_event_vendor(actor, event)

        changes = payload.model_dump(exclude_unset=True)
        config = self.get_config_for_event(event_id)
        creating = config is None
        if creating:
            config = RegistrationConfig(event_id=event_id)

        if "fields" in changes:
            fields = self.check_fields(payload.fields or [])
            config.fields = dump_fields(_renumber(fields))
        if changes.get("enabled") is not None:
            config.enabled = payload.enabled
        if changes.get("requires_approval") is not None:
            config.requires_approval = payload.requires_approval
        if changes.get("email_notifications") is not None:
            config.email_notifications = payload.email_notifications.model_dump()
        if "max_registrations" in changes:
            config.max_registrations = payload.max_registrations
        if "registration_deadline" in changes:
            config.registration_deadline = payload.registration_deadline

        config.updated_at = datetime.now(timezone.utc)
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)

        logger.info(
            f"Registration config {'created' if creating else 'updated'} for event {event_id} "
            f"({len(config.fields)} fields, enabled={config.enabled})"
        )
        return config

    def duplicate_config(
        self, actor: Actor, event_id: uuid.UUID, source_event_id: uuid.UUID
    ) -> RegistrationConfig:
        """
        Copy another event's config onto ``event_id`` with fresh field ids.

        Conditional rules are rewritten to point at the new ids. The
        registration deadline is event-specific and is not copied.

        Raises:
            NotFound: If either event or the source config does not exist
            Forbidden: If the actor does not manage both events
        """
        if event_id == source_event_id:
            raise InvalidSchema(["An event's configuration cannot be duplicated onto itself"])

        event = self.events.require_event(event_id)
        self.events.ensure_event_vendor(actor, event)
        source_event = self.events.require_event(source_event_id)
        self.events.ensure_event_vendor(actor, source_event)
        if source_event.vendor_id != event.vendor_id:
            raise Forbidden("Configurations can only be copied between events of the same vendor")

        source = self.get_config_for_event(source_event_id)
        if not source:
            raise NotFound("The source event has no registration configuration")

        source_fields = source.form_fields()
        id_map = {field.id: uuid.uuid4().hex for field in source_fields}
        copied: List[FormFieldSpec] = []
        for field in source_fields:
            update = {"id": id_map[field.id]}
            if field.conditional is not None:
                dependency = field.conditional.depends_on_field_id
                update["conditional"] = field.conditional.model_copy(
                    update={"depends_on_field_id": id_map.get(dependency, dependency)}
                )
            copied.append(field.model_copy(update=update))

        config = self.get_config_for_event(event_id) or RegistrationConfig(event_id=event_id)
        config.fields = dump_fields(_renumber(copied))
        config.enabled = True
        config.requires_approval = source.requires_approval
        config.email_notifications = dict(source.email_notifications or {})
        config.max_registrations = source.max_registrations
        config.updated_at = datetime.now(timezone.utc)

        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)

        logger.info(
            f"Registration config duplicated from event {source_event_id} to {event_id}"
        )
        return config

    def disable(self, actor: Actor, event_id: uuid.UUID) -> RegistrationConfig:
        """Stop accepting submissions. Existing registrations are untouched."""
        event = self.events.require_event(event_id)
        self.events.ensure_event_vendor(actor, event)
        config = self.get_config(event_id)

        if config.enabled:
            config.enabled = False
            config.updated_at = datetime.now(timezone.utc)
            self.db.add(config)
            self.db.commit()
            self.db.refresh(config)
            logger.info(f"Registration disabled for event {event_id}")
        return config

    def reorder_fields(
        self, actor: Actor, event_id: uuid.UUID, field_ids: List[str]
    ) -> RegistrationConfig:
        """
        Put the fields in the given order and renumber them from 0

        Raises:
            InvalidSchema: If ``field_ids`` is not a permutation of the current ids
        """
        event = self.events.require_event(event_id)
        self.events.ensure_event_vendor(actor, event)
        config = self.get_config(event_id)

        fields_by_id = {field.id: field for field in config.form_fields()}
        if len(field_ids) != len(fields_by_id) or set(field_ids) != set(fields_by_id):
            raise InvalidSchema(["The new order must list every field exactly once"])

        reordered = [
            fields_by_id[field_id].model_copy(update={"order": index})
            for index, field_id in enumerate(field_ids)
        ]
        config.fields = dump_fields(reordered)
        config.updated_at = datetime.now(timezone.utc)
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)

        logger.info(f"Reordered {len(reordered)} fields for event {event_id}")
        return config
