from __future__ import annotations
"""Field-level validation helpers.

Checks append to a shared ``errors`` list so one request reports every bad field
at once; ``raise_if_errors`` turns the list into a ValidationError.
"""
import re
from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

from complaint_desk.errors import ValidationError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^[6-9]\d{9}$')

Errors = List[Dict[str, str]]


def _add(errors: Errors, field: str, message: str):
    errors.append({'field': field, 'message': message})


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


def check_length(errors: Errors, field: str, value: Optional[str], min_len: int = 0, max_len: Optional[int] = None,
                 required: bool = True, label: Optional[str] = None) -> Optional[str]:
    label = label or field.replace('_', ' ').capitalize()
    value = clean_text(value)
    if not value:
        if required:
            _add(errors, field, f'{label} is required')
        return value or None
    if len(value) < min_len:
        _add(errors, field, f'{label} must be at least {min_len} characters')
    elif max_len is not None and len(value) > max_len:
        _add(errors, field, f'{label} cannot exceed {max_len} characters')
    return value


def check_choice(errors: Errors, field: str, value: Any, allowed: Iterable[str], default: Optional[str] = None) -> Optional[str]:
    if value is None or value == '':
        return default
    value = clean_text(value).lower()
    if value not in allowed:
        _add(errors, field, f"'{value}' is not a valid {field}")
    return value


def check_email(errors: Errors, field: str, value: Any) -> Optional[str]:
    value = clean_text(value)
    if not value:
        _add(errors, field, 'Contact email is required')
        return None
    value = value.lower()
    if not EMAIL_RE.match(value):
        _add(errors, field, 'Please provide a valid email address')
    return value


def check_phone(errors: Errors, field: str, value: Any) -> Optional[str]:
    value = clean_text(value)
    if not value:
        return None
    if not PHONE_RE.match(value):
        _add(errors, field, 'Please provide a valid 10-digit phone number')
    return value


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed; returns it for inline usage."""
    if new_status not in allowed:
        raise ValidationError.single(field_name, f'{field_name} invalid')
    return new_status


def parse_timestamp(value: Any, field_name: str, end_of_day: bool = False) -> Optional[datetime]:
    """ISO-8601 date or datetime as an aware UTC datetime; naive input is read as UTC.

    A bare date means midnight, or the last instant of that day with ``end_of_day``.
    """
    text = clean_text(value)
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError.single(field_name, f'{field_name} must be an ISO-8601 date or datetime')
    if end_of_day and len(text) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def raise_if_errors(errors: Errors):
    if errors:
        raise ValidationError(errors, detail='; '.join(e['message'] for e in errors))

__all__ = [
    'clean_text', 'check_length', 'check_choice', 'check_email', 'check_phone',
    'validate_status', 'parse_timestamp', 'raise_if_errors',
]
