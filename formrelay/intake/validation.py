"""
Validation and sanitization of submitted form values.

With an empty schema every submitted key is kept (legacy mode). With a schema,
only declared fields survive and each value is checked against its type.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from formrelay.schemas.project import FieldDefinition, FieldType

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:([0-5]\d))?$")

# Non-ISO spellings browsers and date pickers commonly submit.
DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    sanitized_data: Dict[str, Any] = field(default_factory=dict)


def sanitize_value(value: Any) -> Any:
    """
    Trim strings and neutralise angle brackets, recursing into lists and dicts.

    Only ``<`` and ``>`` are replaced, so sanitizing twice is a no-op.
    """
    if isinstance(value, str):
        return value.strip().replace("<", "&lt;").replace(">", "&gt;")
    if isinstance(value, (list, tuple)):
        return [sanitize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_value(item) for key, item in value.items()}
    return value


def sanitize_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: sanitize_value(value) for key, value in data.items()}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


# ---------------------------------------------------------------------------
# Per-type checks: (value) -> (ok, value to keep)
# ---------------------------------------------------------------------------

TypeCheck = Callable[[Any], Tuple[bool, Any]]


def _passthrough(value: Any) -> Tuple[bool, Any]:
    return True, value


def _check_email(value: Any) -> Tuple[bool, Any]:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip())), value


def _check_number(value: Any) -> Tuple[bool, Any]:
    if isinstance(value, bool):
        return False, value
    if isinstance(value, (int, float)):
        return math.isfinite(value), value
    if not isinstance(value, str):
        return False, value

    text = value.strip()
    # int() and float() accept digit separators; a submitted "1_000" is not a number.
    if "_" in text:
        return False, value
    try:
        return True, int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return False, value
    return math.isfinite(number), number


def _check_date(value: Any) -> Tuple[bool, Any]:
    if not isinstance(value, str):
        return False, value
    text = " ".join(value.split())
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(text)
            return True, value
        except ValueError:
            continue
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True, value
        except ValueError:
            continue
    return False, value


def _check_time(value: Any) -> Tuple[bool, Any]:
    return isinstance(value, str) and bool(TIME_RE.match(value.strip())), value


_TYPE_CHECKS: Dict[FieldType, TypeCheck] = {
    FieldType.TEXT: _passthrough,
    FieldType.TEXTAREA: _passthrough,
    FieldType.CHECKBOX: _passthrough,
    FieldType.SELECT: _passthrough,
    FieldType.EMAIL: _check_email,
    FieldType.NUMBER: _check_number,
    FieldType.DATE: _check_date,
    FieldType.TIME: _check_time,
}

_TYPE_ERRORS: Dict[FieldType, str] = {
    FieldType.EMAIL: "{label} must be a valid email.",
    FieldType.NUMBER: "{label} must be a number.",
    FieldType.DATE: "{label} must be a valid date.",
    FieldType.TIME: "{label} must be a valid time (HH:MM).",
}

_missing = set(FieldType) - set(_TYPE_CHECKS)
if _missing:
    raise RuntimeError(f"No validator registered for field types: {sorted(_missing)}")


def validate_field(field_def: FieldDefinition, value: Any) -> Tuple[Optional[str], Any]:
    """Return (error or None, sanitized value) for one present value."""
    ok, value = _TYPE_CHECKS[field_def.type](value)
    if not ok:
        template = _TYPE_ERRORS.get(field_def.type, "{label} is invalid.")
        return template.format(label=field_def.label), value
    return None, sanitize_value(value)


def validate_and_sanitize(
    data: Mapping[str, Any],
    schema: Optional[Sequence[FieldDefinition]] = None,
) -> ValidationResult:
    if not schema:
        return ValidationResult(is_valid=True, sanitized_data=sanitize_fields(data))

    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    for field_def in schema:
        value = data.get(field_def.id)

        if _is_blank(value):
            if field_def.required:
                errors.append(f"{field_def.label} is required.")
            continue

        error, clean = validate_field(field_def, value)
        if error:
            errors.append(error)
            continue
        sanitized[field_def.id] = clean

    return ValidationResult(is_valid=not errors, errors=errors, sanitized_data=sanitized)
