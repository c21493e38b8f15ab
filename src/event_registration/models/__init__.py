"""Database models for the event registration service"""

from event_registration.models.event import Event
from event_registration.models.registration import (
    PaymentStatus,
    Registration,
    RegistrationStatus,
)
from event_registration.models.registration_config import (
    EmailNotifications,
    RegistrationConfig,
)

__all__ = [
    "Event",
    "Registration",
    "RegistrationStatus",
    "PaymentStatus",
    "RegistrationConfig",
    "EmailNotifications",
]
