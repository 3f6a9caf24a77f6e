"""Field constraint checks applied to create and update input."""

import re
from dataclasses import dataclass
from typing import Any

from entityforge.schema.types import FieldDefinition, SchemaDocument

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_NUMERIC_TYPES = ("integer", "float", "decimal")
_STRING_TYPES = ("string", "text", "email", "password")


@dataclass(frozen=True)
class FieldIssue:
    """A single constraint violation.

    Attributes:
        message: Human-readable message
        code: Machine-readable code (e.g., "REQUIRED", "MAX_LENGTH")
        field: Field the issue relates to
    """

    message: str
    code: str
    field: str

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "field": self.field}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def check_field(f: FieldDefinition, value: Any) -> list[FieldIssue]:
    """Validate one value against its field's rules."""
    rules = f.validation
    if _is_empty(value):
        if f.required:
            return [FieldIssue(f"{f.label} is required", "REQUIRED", f.name)]
        return []

    issues: list[FieldIssue] = []

    if f.type == "email" and isinstance(value, str) and not EMAIL_PATTERN.match(value):
        issues.append(FieldIssue(f"{f.label} must be a valid email address", "INVALID_EMAIL", f.name))

    if f.type in _NUMERIC_TYPES:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return [FieldIssue(f"{f.label} must be a number", "INVALID_NUMBER", f.name)]
        if rules.min is not None and number < rules.min:
            issues.append(FieldIssue(f"{f.label} must be at least {rules.min}", "MIN_VALUE", f.name))
        if rules.max is not None and number > rules.max:
            issues.append(FieldIssue(f"{f.label} must be at most {rules.max}", "MAX_VALUE", f.name))

    if f.type in _STRING_TYPES and isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            issues.append(FieldIssue(
                f"{f.label} must be at least {rules.min_length} characters", "MIN_LENGTH", f.name
            ))
        if rules.max_length is not None and len(value) > rules.max_length:
            issues.append(FieldIssue(
                f"{f.label} must be at most {rules.max_length} characters", "MAX_LENGTH", f.name
            ))

    if rules.pattern and isinstance(value, str) and not re.search(rules.pattern, value):
        issues.append(FieldIssue(f"{f.label} has an invalid format", "PATTERN", f.name))

    return issues


def validate_record(
    document: SchemaDocument, data: dict[str, Any], *, partial: bool = False
) -> list[FieldIssue]:
    """Check input against every editable field.

    With partial=True (updates) only the supplied keys are checked, so a
    required field may be omitted but not blanked.
    """
    issues: list[FieldIssue] = []
    for name, f in document.fields.items():
        if not f.editable:
            continue
        if partial and name not in data:
            continue
        issues.extend(check_field(f, data.get(name)))
    return issues
