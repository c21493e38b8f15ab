"""Registration directory - filtered, paginated registration listings"""

import enum
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel
from sqlalchemy import or_
from sqlmodel import Session, func, select

from event_registration.auth.models import Actor
from event_registration.config import config
from event_registration.errors import Forbidden
from event_registration.models.registration import Registration, RegistrationStatus
from event_registration.services.event_service import EventService
from event_registration.services.review_workflow import ACTIONABLE_STATES

logger = logging.getLogger(__name__)


def _like_pattern(term: str) -> str:
    """Substring pattern for ``term`` with LIKE wildcards matched literally"""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SortField(str, enum.Enum):
    SUBMITTED_AT = "submitted_at"
    CREATED_AT = "created_at"
    STATUS = "status"
    PAYMENT_AMOUNT = "payment_amount"


class RegistrationFilters(BaseModel):
    status: Optional[List[RegistrationStatus]] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    actionable: bool = False
    sort_by: SortField = SortField.SUBMITTED_AT
    sort_order: Literal["asc", "desc"] = "desc"


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next_page: bool
    has_prev_page: bool


@dataclass
class RegistrationPage:
    registrations: List[Registration]
    pagination: Pagination
    by_status: Dict[str, int]


# Drafts have no submission time; they sort and filter by creation time
_activity_time = func.coalesce(Registration.submitted_at, Registration.created_at)

_SORT_COLUMNS = {
    SortField.SUBMITTED_AT: _activity_time,
    SortField.CREATED_AT: Registration.created_at,
    SortField.STATUS: Registration.status,
    SortField.PAYMENT_AMOUNT: Registration.payment_amount,
}


class RegistrationDirectory:
    """Read-side listings for vendors, participants and admins"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.events = EventService(db_session)

    def list_for_event(
        self,
        actor: Actor,
        event_id: uuid.UUID,
        filters: Optional[RegistrationFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> RegistrationPage:
        """
        List an event's registrations for its vendor

        Raises:
            NotFound: If the event does not exist
            Forbidden: If the actor does not manage the event
        """
        event = self.events.require_event(event_id)
        self.events.ensure_event_vendor(actor, event)
        return self._list(Registration.event_id == event_id, filters, page, page_size)

    def list_for_participant(
        self,
        actor: Actor,
        participant_id: str,
        filters: Optional[RegistrationFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> RegistrationPage:
        """List a participant's own registrations (admins may list anyone's)"""
        if actor.user_id != participant_id and not actor.is_admin:
            raise Forbidden("You can only list your own registrations")
        return self._list(Registration.participant_id == participant_id, filters, page, page_size)

    def count_by_status(self, scope) -> Dict[str, int]:
        counts = {status.value: 0 for status in RegistrationStatus}
        rows = self.db.exec(
            select(Registration.status, func.count())
            .where(scope)
            .group_by(Registration.status)
        ).all()
        for status, count in rows:
            counts[RegistrationStatus(status).value] = count
        return counts

    @staticmethod
    def _apply_filters(stmt, filters: RegistrationFilters):
        if filters.status:
            stmt = stmt.where(Registration.status.in_(filters.status))
        if filters.actionable:
            stmt = stmt.where(Registration.status.in_(list(ACTIONABLE_STATES)))
        if filters.search and filters.search.strip():
            term = _like_pattern(filters.search.strip())
            stmt = stmt.where(
                or_(
                    Registration.confirmation_number.ilike(term, escape="\\"),
                    Registration.participant_name.ilike(term, escape="\\"),
                    Registration.participant_email.ilike(term, escape="\\"),
                )
            )
        if filters.date_from:
            stmt = stmt.where(_activity_time >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(_activity_time <= filters.date_to)
        return stmt

    def _list(
        self,
        scope,
        filters: Optional[RegistrationFilters],
        page: int,
        page_size: Optional[int],
    ) -> RegistrationPage:
        filters = filters or RegistrationFilters()
        page_size = min(page_size or config["default_page_size"], config["max_page_size"])
        page = max(page, 1)

        stmt = self._apply_filters(select(Registration).where(scope), filters)
        total = self.db.exec(select(func.count()).select_from(stmt.subquery())).one()

        sort_column = _SORT_COLUMNS[filters.sort_by]
        if filters.sort_order == "asc":
            order = (sort_column.asc(), Registration.id.asc())
        else:
            order = (sort_column.desc(), Registration.id.desc())
        registrations = self.db.exec(
            stmt.order_by(*order).offset((page - 1) * page_size).limit(page_size)
        ).all()

        total_pages = math.ceil(total / page_size) if total else 0
        pagination = Pagination(
            current_page=page,
            total_pages=total_pages,
            total=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
        logger.debug(f"Listed {len(registrations)} of {total} registrations (page {page})")
        return RegistrationPage(
            registrations=list(registrations),
            pagination=pagination,
            by_status=self.count_by_status(scope),
        )
