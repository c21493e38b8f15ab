"""Field-level validation for registration answers.

``validate_field`` checks one answer against one field and never raises: it
returns a ``ValidationResult``. ``validate_answers`` runs it over a whole form
and collects every failure so callers can re-render all offending fields at
once. ``schema_errors`` is the save-time check for a field set.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from event_registration.models.field_type import ConditionOperator, FieldType
from event_registration.models.files import FileReference, FileUpload
from event_registration.models.form_field import (
    Answers,
    BaseFormField,
    CheckboxField,
    ChoiceField,
    ConditionalRule,
    DateField,
    FileField,
    FormFieldSpec,
    NumberField,
    TextField,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[0-9\s\-().]{7,20}$")

TRUE_STRINGS = {"true", "on", "1", "yes"}
FALSE_STRINGS = {"false", "off", "0", "no", ""}


@dataclass
class ValidationResult:
    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None
    skipped: bool = False

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def skip(cls) -> "ValidationResult":
        return cls(valid=True, skipped=True)

    @classmethod
    def fail(cls, code: str, message: str) -> "ValidationResult":
        return cls(valid=False, code=code, message=message)


def is_empty(field: BaseFormField, value: Any) -> bool:
    """Whether ``value`` counts as "no answer" for ``field``"""
    if value is None:
        return True
    if isinstance(value, str):
        if isinstance(field, CheckboxField):
            return value.strip().lower() in FALSE_STRINGS
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    if isinstance(field, CheckboxField):
        return value is False
    return False


def _comparable(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return float(stripped)
        except ValueError:
            lowered = stripped.lower()
            return lowered if lowered in ("true", "false") else stripped
    return value


def _equals(answer: Any, expected: Any) -> bool:
    if isinstance(answer, list):
        if isinstance(expected, list):
            return sorted(map(str, answer)) == sorted(map(str, expected))
        return False
    return _comparable(answer) == _comparable(expected)


def evaluate_conditional(rule: ConditionalRule, answers: Mapping[str, Any]) -> bool:
    """
    Evaluate a conditional display rule against the current answers.

    A missing dependency answer never matches ``equals``/``contains`` and
    always matches ``not_equals``.
    """
    answer = answers.get(rule.depends_on_field_id)
    missing = answer is None or answer == "" or answer == []

    if rule.operator == ConditionOperator.NOT_EQUALS:
        return missing or not _equals(answer, rule.value)
    if missing:
        return False
    if rule.operator == ConditionOperator.EQUALS:
        return _equals(answer, rule.value)
    if rule.operator == ConditionOperator.CONTAINS:
        if isinstance(answer, list):
            return str(rule.value) in [str(item) for item in answer]
        if isinstance(answer, str):
            return str(rule.value) in answer
        return False
    return False


def is_visible(
    field: BaseFormField,
    fields_by_id: Mapping[str, BaseFormField],
    answers: Mapping[str, Any],
    _seen: Optional[set] = None,
) -> bool:
    """A field is visible when its rule holds and the field it depends on is visible"""
    if field.conditional is None:
        return True
    seen = _seen or set()
    if field.id in seen:
        return False
    seen.add(field.id)
    dependency = fields_by_id.get(field.conditional.depends_on_field_id)
    if dependency is not None and not is_visible(dependency, fields_by_id, answers, seen):
        return False
    return evaluate_conditional(field.conditional, answers)


def _to_text(value: Any) -> Optional[str]:
    # JSON clients may send phone numbers and codes as numbers
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return value if isinstance(value, str) else None


def _check_text(field: TextField, value: Any) -> ValidationResult:
    text = _to_text(value)
    if text is None:
        return ValidationResult.fail("invalid_type", f"{field.label} must be text")
    text = text.strip()
    rules = field.validation
    if rules and rules.min_length is not None and len(text) < rules.min_length:
        return ValidationResult.fail(
            "too_short", f"{field.label} must be at least {rules.min_length} characters"
        )
    if rules and rules.max_length is not None and len(text) > rules.max_length:
        return ValidationResult.fail(
            "too_long", f"{field.label} must be at most {rules.max_length} characters"
        )
    if field.type == FieldType.EMAIL and not EMAIL_RE.match(text):
        return ValidationResult.fail("invalid_email", "Please enter a valid email address")
    if field.type == FieldType.PHONE and not PHONE_RE.match(text):
        return ValidationResult.fail("invalid_phone", "Please enter a valid phone number")
    if rules and rules.pattern:
        try:
            if re.fullmatch(rules.pattern, text) is None:
                return ValidationResult.fail(
                    "pattern_mismatch", f"{field.label} is not in the expected format"
                )
        except re.error:
            logger.warning(f"Invalid pattern on field {field.id}: {rules.pattern!r}")
            return ValidationResult.fail(
                "invalid_pattern", f"{field.label} cannot be validated"
            )
    return ValidationResult.ok()


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _check_number(field: NumberField, value: Any) -> ValidationResult:
    number = _to_number(value)
    if number is None:
        return ValidationResult.fail("invalid_number", f"{field.label} must be a valid number")
    rules = field.validation
    if rules and rules.min_value is not None and number < rules.min_value:
        return ValidationResult.fail(
            "below_minimum", f"{field.label} must be at least {rules.min_value:g}"
        )
    if rules and rules.max_value is not None and number > rules.max_value:
        return ValidationResult.fail(
            "above_maximum", f"{field.label} must be at most {rules.max_value:g}"
        )
    return ValidationResult.ok()


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _check_date(field: DateField, value: Any) -> ValidationResult:
    if _to_date(value) is None:
        return ValidationResult.fail("invalid_date", f"{field.label} must be a date (YYYY-MM-DD)")
    return ValidationResult.ok()


def _check_choice(field: ChoiceField, value: Any) -> ValidationResult:
    allowed = set(field.option_values())
    if field.is_multiple:
        values = [value] if isinstance(value, str) else value
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            return ValidationResult.fail("invalid_type", f"{field.label} must be a list of options")
        if any(v not in allowed for v in values):
            return ValidationResult.fail("invalid_option", f"Invalid option for {field.label}")
        return ValidationResult.ok()

    if not isinstance(value, str) or value not in allowed:
        return ValidationResult.fail("invalid_option", f"Invalid option for {field.label}")
    return ValidationResult.ok()


def _check_checkbox(field: CheckboxField, value: Any) -> ValidationResult:
    if isinstance(value, bool):
        return ValidationResult.ok()
    if isinstance(value, str) and value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
        return ValidationResult.ok()
    return ValidationResult.fail("invalid_type", f"{field.label} must be checked or unchecked")


def _mime_allowed(upload: FileUpload, allowed: List[str]) -> bool:
    content_type = (upload.content_type or "").lower()
    filename = (upload.filename or "").lower()
    for entry in allowed:
        entry = entry.lower().strip()
        if entry.startswith(".") and filename.endswith(entry):
            return True
        if entry.endswith("/*") and content_type.startswith(entry[:-1]):
            return True
        if entry == content_type:
            return True
    return False


def _check_file(field: FileField, value: Any) -> ValidationResult:
    if isinstance(value, FileReference) or (isinstance(value, dict) and "file_id" in value):
        # Already stored with an earlier submission
        return ValidationResult.ok()
    if not isinstance(value, FileUpload):
        return ValidationResult.fail("invalid_file", f"{field.label} must be an uploaded file")
    rules = field.validation
    if rules and rules.max_file_size is not None and value.size > rules.max_file_size:
        return ValidationResult.fail(
            "file_too_large",
            f"{field.label} must be smaller than {rules.max_file_size // 1024} KB",
        )
    if rules and rules.allowed_mime_types and not _mime_allowed(value, rules.allowed_mime_types):
        return ValidationResult.fail(
            "file_type_not_allowed", f"{field.label} has a file type that is not allowed"
        )
    return ValidationResult.ok()


_TYPE_CHECKS = {
    TextField: _check_text,
    NumberField: _check_number,
    DateField: _check_date,
    ChoiceField: _check_choice,
    CheckboxField: _check_checkbox,
    FileField: _check_file,
}


def validate_field(
    field: FormFieldSpec, value: Any, answers: Optional[Mapping[str, Any]] = None
) -> ValidationResult:
    """
    Validate a single answer against its field definition.

    Rules are applied in order and the first failure wins: a false
    conditional skips the field, then the required check, then the
    type-specific checks.

    Args:
        field: Field definition
        value: Submitted value (``FileUpload``/``FileReference`` for file fields)
        answers: All current answers, used to evaluate the conditional rule

    Returns:
        ValidationResult; this function does not raise
    """
    if field.conditional is not None and not evaluate_conditional(
        field.conditional, answers or {}
    ):
        return ValidationResult.skip()

    if is_empty(field, value):
        if field.required:
            return ValidationResult.fail("missing_required_field", f"{field.label} is required")
        return ValidationResult.ok()

    check = _TYPE_CHECKS.get(type(field))
    if check is None:
        return ValidationResult.fail("unsupported_field", f"{field.label} cannot be validated")
    try:
        return check(field, value)
    except (TypeError, ValueError) as e:
        logger.warning(f"Unexpected value for field {field.id}: {e}")
        return ValidationResult.fail("invalid_value", f"{field.label} is invalid")


def validate_answers(
    fields: List[FormFieldSpec], answers: Mapping[str, Any], partial: bool = False
) -> Dict[str, str]:
    """
    Validate every answer and collect all failures.

    Args:
        fields: Field set the answers are checked against
        answers: Field id -> value, file fields included
        partial: Skip the required check (used for drafts)

    Returns:
        Mapping of field id to failure reason; empty when everything is valid
    """
    fields_by_id = {field.id: field for field in fields}
    errors: Dict[str, str] = {}

    for key in answers:
        if key not in fields_by_id:
            errors[key] = "Unknown field"

    for field in fields:
        value = answers.get(field.id)
        if not is_visible(field, fields_by_id, answers):
            continue
        if partial and is_empty(field, value):
            continue
        result = validate_field(field, value, answers)
        if not result.valid:
            errors[field.id] = result.message

    return errors


def _normalize_value(field: FormFieldSpec, value: Any) -> Any:
    if isinstance(field, NumberField):
        number = _to_number(value)
        return int(number) if number is not None and number.is_integer() else number
    if isinstance(field, DateField):
        parsed = _to_date(value)
        return parsed.isoformat() if parsed else value
    if isinstance(field, CheckboxField):
        if isinstance(value, str):
            return value.strip().lower() in TRUE_STRINGS
        return bool(value)
    if isinstance(field, TextField):
        text = _to_text(value)
        return text.strip() if text is not None else value
    if isinstance(field, ChoiceField) and field.is_multiple and isinstance(value, str):
        return [value]
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_answers(fields: List[FormFieldSpec], answers: Mapping[str, Any]) -> Answers:
    """
    Build the stored answer map: visible, non-empty, non-file answers coerced
    to their field's type. Answers of hidden fields are dropped.
    """
    fields_by_id = {field.id: field for field in fields}
    normalized: Answers = {}
    for field in fields:
        if isinstance(field, FileField):
            continue
        value = answers.get(field.id)
        if is_empty(field, value) and not isinstance(field, CheckboxField):
            continue
        if value is None or not is_visible(field, fields_by_id, answers):
            continue
        normalized[field.id] = _normalize_value(field, value)
    return normalized


def visible_file_fields(fields: List[FormFieldSpec], answers: Mapping[str, Any]) -> set:
    """Ids of file fields that are visible for the given answers"""
    fields_by_id = {field.id: field for field in fields}
    return {
        field.id
        for field in fields
        if isinstance(field, FileField) and is_visible(field, fields_by_id, answers)
    }


def schema_errors(fields: List[FormFieldSpec]) -> List[str]:
    """
    Save-time checks for a field set.

    Returns:
        Human-readable problems; empty when the schema is valid
    """
    problems: List[str] = []
    seen_ids: set = set()
    seen_orders: set = set()

    for field in fields:
        if field.id in seen_ids:
            problems.append(f"Duplicate field id '{field.id}'")
        seen_ids.add(field.id)
        if field.order in seen_orders:
            problems.append(f"Duplicate order {field.order} on field '{field.id}'")
        seen_orders.add(field.order)

    fields_by_id = {field.id: field for field in fields}
    for field in fields:
        rule = field.conditional
        if rule is not None:
            if rule.depends_on_field_id == field.id:
                problems.append(f"Field '{field.id}' cannot depend on itself")
            elif rule.depends_on_field_id not in fields_by_id:
                problems.append(
                    f"Field '{field.id}' depends on unknown field '{rule.depends_on_field_id}'"
                )

        if isinstance(field, ChoiceField):
            values = field.option_values()
            if not values:
                problems.append(f"Field '{field.id}' must have at least one option")
            elif len(set(values)) != len(values):
                problems.append(f"Field '{field.id}' has duplicate option values")

        if isinstance(field, TextField) and field.validation:
            rules = field.validation
            if (
                rules.min_length is not None
                and rules.max_length is not None
                and rules.min_length > rules.max_length
            ):
                problems.append(f"Field '{field.id}' has min_length greater than max_length")
            if rules.pattern:
                try:
                    re.compile(rules.pattern)
                except re.error:
                    problems.append(f"Field '{field.id}' has an invalid pattern")

        if isinstance(field, NumberField) and field.validation:
            rules = field.validation
            if (
                rules.min_value is not None
                and rules.max_value is not None
                and rules.min_value > rules.max_value
            ):
                problems.append(f"Field '{field.id}' has min_value greater than max_value")

    for field in fields:
        if field.conditional is not None and _has_cycle(field, fields_by_id):
            problems.append(f"Field '{field.id}' is part of a conditional cycle")

    return problems


def _has_cycle(field: BaseFormField, fields_by_id: Mapping[str, BaseFormField]) -> bool:
    seen = {field.id}
    current = field
    while current.conditional is not None:
        next_id = current.conditional.depends_on_field_id
        if next_id == current.id:
            # Self references are reported separately
            return False
        if next_id in seen:
            return True
        current = fields_by_id.get(next_id)
        if current is None:
            return False
        seen.add(next_id)
    return False
