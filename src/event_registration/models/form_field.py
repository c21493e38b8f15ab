"""Typed form field schema for registration configs.

Fields are stored as JSON on the registration config (and snapshotted onto
each submitted registration). ``FormFieldSpec`` is a discriminated union on
``type`` so every field parses into the class that carries the constraints
relevant to it.
"""

import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from event_registration.models.field_type import ConditionOperator, FieldType


class FieldOption(BaseModel):
    """A single selectable option of a select/multiselect field"""

    value: str
    label: str

    @model_validator(mode="before")
    @classmethod
    def _accept_plain_string(cls, data: Any) -> Any:
        # Older configs store options as a bare list of strings
        if isinstance(data, str):
            return {"value": data, "label": data}
        return data


class ConditionalRule(BaseModel):
    """Show (and require) a field only when another field's answer matches"""

    depends_on_field_id: str
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None


class TextValidation(BaseModel):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = None


class NumberValidation(BaseModel):
    min_value: Optional[float] = None
    max_value: Optional[float] = None


class FileValidation(BaseModel):
    max_file_size: Optional[int] = Field(default=None, gt=0)  # bytes
    allowed_mime_types: Optional[List[str]] = None


class BaseFormField(BaseModel):
    """Attributes shared by every field type"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    label: str
    help_text: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    conditional: Optional[ConditionalRule] = None
    order: int = 0


class TextField(BaseFormField):
    type: Literal["text", "textarea", "email", "phone"]
    validation: Optional[TextValidation] = None


class NumberField(BaseFormField):
    type: Literal["number"]
    validation: Optional[NumberValidation] = None


class DateField(BaseFormField):
    type: Literal["date"]


class ChoiceField(BaseFormField):
    type: Literal["select", "multiselect"]
    options: List[FieldOption] = Field(default_factory=list)

    @property
    def is_multiple(self) -> bool:
        return self.type == FieldType.MULTISELECT

    def option_values(self) -> List[str]:
        return [option.value for option in self.options]


class CheckboxField(BaseFormField):
    type: Literal["checkbox"]


class FileField(BaseFormField):
    type: Literal["file"]
    validation: Optional[FileValidation] = None


FormFieldSpec = Annotated[
    Union[TextField, NumberField, DateField, ChoiceField, CheckboxField, FileField],
    Field(discriminator="type"),
]

# Answer values after normalization, keyed by field id
AnswerValue = Union[str, int, float, bool, List[str], None]
Answers = Dict[str, AnswerValue]

_fields_adapter = TypeAdapter(List[FormFieldSpec])


def parse_fields(raw_fields: List[dict]) -> List[FormFieldSpec]:
    """Parse stored JSON field dicts into typed fields, ordered by ``order``"""
    fields = _fields_adapter.validate_python(raw_fields or [])
    return sorted(fields, key=lambda f: f.order)


def dump_fields(fields: List[FormFieldSpec]) -> List[dict]:
    """Serialize typed fields for JSON storage"""
    return [field.model_dump(mode="json", exclude_none=True) for field in fields]
