"""
In-memory editing model behind the form builder screen.

Fields are kept as an ordered list of descriptors. Reordering is id-based
(the dragged field is moved to the position of the field it was dropped on).
"""
import time
from typing import Any, Dict, List, Optional

from clientportal.forms.schema import (
    CHOICE_TYPES,
    DEFAULT_SECTION_ID,
    DEFAULT_SECTION_TITLE,
    FIELD_TYPES,
    FORM_DOCUMENT_VERSION,
    FormDocument,
    form_field_adapter,
)

DEFAULT_OPTIONS = ["Option 1", "Option 2"]


class FormBuilder:
    def __init__(self, fields: Optional[List[Dict[str, Any]]] = None):
        self._fields: List[Dict[str, Any]] = []
        self._last_stamp = 0
        for field in fields or []:
            self._fields.append(self._validated(field))

    @classmethod
    def load(cls, document: Any) -> "FormBuilder":
        """Load a stored document, new (sections) or legacy (flat fields)."""
        if not document:
            return cls()
        parsed = FormDocument.model_validate(document)
        return cls([field.model_dump(exclude_none=True) for field in parsed.all_fields()])

    @property
    def fields(self) -> List[Dict[str, Any]]:
        return [dict(field) for field in self._fields]

    def _new_id(self) -> str:
        stamp = int(time.time() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"field-{stamp}"

    def _index(self, field_id: str) -> int:
        for i, field in enumerate(self._fields):
            if field["id"] == field_id:
                return i
        raise KeyError(field_id)

    @staticmethod
    def _validated(field: Dict[str, Any]) -> Dict[str, Any]:
        return form_field_adapter.validate_python(field).model_dump(exclude_none=True)

    def append(self, field_type: str) -> Dict[str, Any]:
        if field_type not in FIELD_TYPES:
            raise ValueError(f"Unknown field type: {field_type}")
        field: Dict[str, Any] = {
            "id": self._new_id(),
            "type": field_type,
            "label": f"New {field_type} field",
            "required": False,
        }
        if field_type in CHOICE_TYPES:
            field["options"] = list(DEFAULT_OPTIONS)
        field = self._validated(field)
        self._fields.append(field)
        return dict(field)

    def update(self, field_id: str, **changes: Any) -> Dict[str, Any]:
        """Apply changes to one field. The id cannot change."""
        i = self._index(field_id)
        changes.pop("id", None)
        merged = {**self._fields[i], **changes}
        if merged.get("type") not in CHOICE_TYPES:
            merged.pop("options", None)
        elif not merged.get("options"):
            merged["options"] = list(DEFAULT_OPTIONS)
        self._fields[i] = self._validated(merged)
        return dict(self._fields[i])

    def remove(self, field_id: str) -> None:
        del self._fields[self._index(field_id)]

    def move(self, active_id: str, over_id: str) -> None:
        if active_id == over_id:
            return
        old_index = self._index(active_id)
        new_index = self._index(over_id)
        field = self._fields.pop(old_index)
        self._fields.insert(new_index, field)

    def to_document(self) -> Dict[str, Any]:
        document = {
            "version": FORM_DOCUMENT_VERSION,
            "sections": [{"id": DEFAULT_SECTION_ID, "title": DEFAULT_SECTION_TITLE, "fields": self.fields}],
        }
        # Re-validate the whole document so duplicate ids surface here
        return FormDocument.model_validate(document).model_dump(exclude_none=True)

    def to_payload(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Body for POST /api/forms and PUT /api/forms/{id}."""
        return {"name": name, "description": description, "fields": self.to_document()}
