"""Domain errors raised by the registration services.

Each error carries the HTTP status it maps to and a message that is safe to
show to the user. The FastAPI exception handler in ``main.py`` renders them.
"""

from typing import Dict, List, Optional


class RegistrationError(Exception):
    """Base class for all registration pipeline errors"""

    status_code = 400
    code = "registration_error"
    default_message = "The request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class NotFound(RegistrationError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class Forbidden(RegistrationError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action"


class InvalidSchema(RegistrationError):
    status_code = 400
    code = "invalid_schema"
    default_message = "The registration form configuration is invalid"

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class ValidationFailed(RegistrationError):
    """One or more answers failed validation; ``errors`` maps field id to reason"""

    status_code = 400
    code = "validation_failed"
    default_message = "Please correct the highlighted fields"

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class RegistrationDisabled(RegistrationError):
    status_code = 403
    code = "registration_disabled"
    default_message = "Registration is not open for this event"


class RegistrationClosed(RegistrationError):
    status_code = 403
    code = "registration_closed"
    default_message = "Registration for this event is closed"


class InvalidTransition(RegistrationError):
    status_code = 409
    code = "invalid_transition"
    default_message = "This action is not allowed in the registration's current state"


class PaymentRequired(RegistrationError):
    status_code = 402
    code = "payment_required"
    default_message = "The registration cannot be approved until payment is completed"


class PaymentIntentMismatch(RegistrationError):
    status_code = 409
    code = "payment_intent_mismatch"
    default_message = "The payment does not match this registration"


class PaymentNotCompleted(RegistrationError):
    status_code = 409
    code = "payment_not_completed"
    default_message = "The payment has not been completed"


class PaymentProviderError(RegistrationError):
    status_code = 502
    code = "payment_provider_error"
    default_message = "The payment provider is unavailable, please try again"


class StorageError(RegistrationError):
    status_code = 502
    code = "storage_error"
    default_message = "The file could not be stored, please try again"
