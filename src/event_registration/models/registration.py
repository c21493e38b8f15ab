"""SQLModel Registration model"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, Index
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from event_registration.models.files import FileReference
from event_registration.models.form_field import FormFieldSpec, parse_fields


class RegistrationStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class PaymentStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Registration(SQLModel, table=True):
    """A participant's draft or submitted response to a registration config"""

    __tablename__ = "registrations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    event_id: uuid.UUID = Field(foreign_key="events.id", index=True)
    participant_id: str = Field(index=True)  # Auth0 user ID as string
    participant_name: Optional[str] = Field(default="")
    participant_email: Optional[str] = Field(default="")
    status: RegistrationStatus = Field(
        default=RegistrationStatus.DRAFT,
        sa_column=Column(
            SAEnum(
                RegistrationStatus,
                name="registration_status",
                native_enum=True,
                values_callable=lambda enum: [e.value for e in enum],
            ),
            nullable=False,
            server_default=RegistrationStatus.DRAFT.value,
        ),
    )
    answers: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    files: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # Field set active when the registration was submitted
    field_snapshot: Optional[List[dict]] = Field(default=None, sa_column=Column(JSON))

    payment_required: bool = Field(default=False)
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.NONE,
        sa_column=Column(
            SAEnum(
                PaymentStatus,
                name="registration_payment_status",
                native_enum=True,
                values_callable=lambda enum: [e.value for e in enum],
            ),
            nullable=False,
            server_default=PaymentStatus.NONE.value,
        ),
    )
    payment_amount: float = Field(default=0.0)
    payment_currency: Optional[str] = None
    payment_intent_id: Optional[str] = Field(default=None, index=True)
    paid_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    confirmation_number: Optional[str] = Field(default=None, unique=True)
    review_remarks: Optional[str] = None
    reviewed_by: Optional[str] = None
    withdrawal_reason: Optional[str] = None

    submitted_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    reviewed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("idx_registrations_event_status", "event_id", "status"),
        Index("idx_registrations_participant_event", "participant_id", "event_id"),
    )

    @property
    def payment_settled(self) -> bool:
        return not self.payment_required or self.payment_status == PaymentStatus.PAID

    def snapshot_fields(self) -> List[FormFieldSpec]:
        return parse_fields(self.field_snapshot or [])

    def file_references(self) -> dict[str, FileReference]:
        return {
            field_id: FileReference.model_validate(ref)
            for field_id, ref in (self.files or {}).items()
        }
