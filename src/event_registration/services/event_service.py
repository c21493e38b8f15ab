"""Event Service - lookups and ownership checks for marketplace events"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from event_registration.auth.models import Actor
from event_registration.errors import Forbidden, NotFound
from event_registration.models.event import Event

logger = logging.getLogger(__name__)


class EventService:
    """Service for the event rows the registration pipeline depends on"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create_event(self, event: Event) -> Event:
        """
        Persist an event mirrored from the marketplace

        Args:
            event: Event object to create

        Returns:
            The stored event
        """
        if not event.created_at:
            event.created_at = datetime.now(timezone.utc)
        event.updated_at = datetime.now(timezone.utc)

        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)

        logger.info(f"Event stored: {event.id} (vendor {event.vendor_id})")
        return event

    def get_event_by_id(self, event_id: uuid.UUID) -> Optional[Event]:
        return self.db.get(Event, event_id)

    def require_event(self, event_id: uuid.UUID) -> Event:
        """Get an event or raise NotFound"""
        event = self.get_event_by_id(event_id)
        if not event:
            raise NotFound("Event not found")
        return event

    @staticmethod
    def is_event_vendor(actor: Actor, event: Event) -> bool:
        """Vendors manage their own events; admins manage every event"""
        return actor.is_admin or event.vendor_id == actor.user_id

    def ensure_event_vendor(self, actor: Actor, event: Event) -> None:
        if not self.is_event_vendor(actor, event):
            logger.warning(
                f"Actor {actor.user_id} attempted a vendor action on event {event.id}"
            )
            raise Forbidden("You do not manage this event")
