"""SQLModel RegistrationConfig model"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from event_registration.models.form_field import FormFieldSpec, parse_fields


class EmailNotifications(BaseModel):
    """Advisory flags read by the notification service"""

    to_vendor: bool = True
    to_participant: bool = True
    custom_message: Optional[str] = None


class RegistrationConfig(SQLModel, table=True):
    """Vendor-authored registration form for one event"""

    __tablename__ = "registration_configs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    event_id: uuid.UUID = Field(foreign_key="events.id", unique=True, index=True)
    enabled: bool = Field(default=True)
    fields: List[dict] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    requires_approval: bool = Field(default=False)
    email_notifications: dict = Field(
        default_factory=lambda: EmailNotifications().model_dump(),
        sa_column=Column(JSON, nullable=False),
    )
    max_registrations: Optional[int] = Field(default=None, ge=1)
    registration_deadline: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def form_fields(self) -> List[FormFieldSpec]:
        """Typed fields in display order"""
        return parse_fields(self.fields)

    def notifications(self) -> EmailNotifications:
        return EmailNotifications.model_validate(self.email_notifications or {})
