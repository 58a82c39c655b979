"""
Versioned form document schema.

A form document is ``{"version": 1, "sections": [{"id", "title", "fields"}]}``
where every field is one of the descriptors below, tagged by ``type``.
Legacy documents (``{"fields": [...]}`` or a bare list of fields) are
normalised into a single ``main`` section when parsed.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

FORM_DOCUMENT_VERSION = 1
DEFAULT_SECTION_ID = "main"
DEFAULT_SECTION_TITLE = "Form Fields"

FIELD_TYPES = ("text", "textarea", "number", "email", "phone", "date", "select", "checkbox", "radio")
CHOICE_TYPES = ("select", "radio")


class FieldValidation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("validation.min must not exceed validation.max")
        return self


class _BaseField(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=500)
    required: bool = False
    placeholder: Optional[str] = None
    validation: Optional[FieldValidation] = None

    @model_validator(mode="before")
    @classmethod
    def drop_null_options(cls, data: Any) -> Any:
        # Older builders serialised "options": null on every field
        if isinstance(data, dict) and "options" in data and data["options"] is None:
            data = {k: v for k, v in data.items() if k != "options"}
        return data


class TextField(_BaseField):
    type: Literal["text", "textarea", "email", "phone"]


class NumberField(_BaseField):
    type: Literal["number"]


class DateField(_BaseField):
    type: Literal["date"]


class CheckboxField(_BaseField):
    type: Literal["checkbox"]


class ChoiceField(_BaseField):
    type: Literal["select", "radio"]
    options: List[str] = Field(..., min_length=1)


FormField = Annotated[
    Union[TextField, NumberField, DateField, CheckboxField, ChoiceField],
    Field(discriminator="type"),
]

form_field_adapter = TypeAdapter(FormField)


class FormSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    title: str = ""
    fields: List[FormField] = Field(default_factory=list)


class FormDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = FORM_DOCUMENT_VERSION
    sections: List[FormSection] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def normalise_legacy(cls, data: Any) -> Any:
        if isinstance(data, list):
            data = {"fields": data}
        if isinstance(data, dict) and "sections" not in data and "fields" in data:
            return {
                "version": data.get("version", FORM_DOCUMENT_VERSION),
                "sections": [{"id": DEFAULT_SECTION_ID, "title": DEFAULT_SECTION_TITLE, "fields": data["fields"]}],
            }
        return data

    @model_validator(mode="after")
    def check_unique_ids(self):
        seen = set()
        for field in self.all_fields():
            if field.id in seen:
                raise ValueError(f"Duplicate field id: {field.id}")
            seen.add(field.id)
        return self

    def all_fields(self) -> list:
        return [field for section in self.sections for field in section.fields]


def parse_form_document(raw: Any) -> FormDocument:
    """Validate a stored or submitted document. Raises pydantic.ValidationError."""
    return FormDocument.model_validate(raw)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def validate_submission(document: FormDocument, data: Dict[str, Any]) -> Dict[str, str]:
    """Check answers against the document. Returns {field_id: problem}."""
    errors: Dict[str, str] = {}
    for field in document.all_fields():
        value = data.get(field.id)
        if _is_blank(value):
            if field.required:
                errors[field.id] = f"{field.label} is required"
            continue
        # An unticked required checkbox is an empty answer
        if field.type == "checkbox" and field.required and value is False:
            errors[field.id] = f"{field.label} is required"
        elif isinstance(field, ChoiceField) and value not in field.options:
            errors[field.id] = f"{field.label} must be one of the listed options"
        elif field.type == "number":
            try:
                number = float(value)
            except (TypeError, ValueError):
                errors[field.id] = f"{field.label} must be a number"
                continue
            bounds = field.validation
            if bounds and bounds.min is not None and number < bounds.min:
                errors[field.id] = f"{field.label} must be at least {bounds.min:g}"
            elif bounds and bounds.max is not None and number > bounds.max:
                errors[field.id] = f"{field.label} must be at most {bounds.max:g}"
    return errors
