"""SQLModel Event model"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class Event(SQLModel, table=True):
    """Marketplace event that registrations are collected for.

    Events are managed by the marketplace; only the attributes the
    registration pipeline needs (ownership and price) are kept here.
    """

    __tablename__ = "events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    vendor_id: str = Field(index=True)  # Auth0 user ID of the owning vendor
    title: str
    starts_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    price: float = Field(default=0.0, ge=0)
    currency: str = Field(default="usd", max_length=3)
    contact_email: Optional[str] = None
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_priced(self) -> bool:
        return bool(self.price and self.price > 0)
