"""Validation rules for user records.

Pure functions only: no I/O, no shared state. The same rules run on the
client (per field on edit, whole record on submit) and in the reference
server before a record is stored.
"""

import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from user_admin.api.schemas.user import EDITABLE_FIELDS, REQUIRED_FIELDS, Role

USERNAME_PATTERN = re.compile(r"^[a-z0-9._-]{3,32}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")

DISPLAY_NAME_MAX_LENGTH = 64

MSG_REQUIRED = "Required"
MSG_USERNAME = "Must be 3-32 characters: a-z, 0-9, '.', '_' or '-'"
MSG_DISPLAY_NAME_LENGTH = f"Must be at most {DISPLAY_NAME_MAX_LENGTH} characters"
MSG_DISPLAY_NAME_PRINTABLE = "Must contain printable characters only"
MSG_EMAIL = "Must be a valid email address"
MSG_PHONE = "Must be a valid phone number"
MSG_ROLES = "Select at least one role"
MSG_ENABLED = "Must be true or false"

_KNOWN_ROLES = {role.value for role in Role}


def normalize_username(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace(" ", "").lower()


def normalize_display_name(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_email(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def normalize_phone(value: Any) -> str | None:
    """Strip spaces and dashes; empty means no phone."""
    if value is None:
        return None
    stripped = re.sub(r"[\s-]", "", str(value))
    return stripped or None


def normalize_roles(value: Any) -> tuple[str, ...]:
    """Get roles as a de-duplicated tuple of role names, order preserved."""
    if value is None:
        return ()
    if isinstance(value, (str, Role)):
        value = [value]
    roles: list[str] = []
    for role in value:
        name = role.value if isinstance(role, Enum) else str(role)
        if name not in roles:
            roles.append(name)
    return tuple(roles)


_NORMALIZERS = {
    "username": normalize_username,
    "display_name": normalize_display_name,
    "email": normalize_email,
    "phone": normalize_phone,
    "roles": normalize_roles,
}


def normalize_field(name: str, value: Any) -> Any:
    normalizer = _NORMALIZERS.get(name)
    if normalizer is None:
        return value
    return normalizer(value)


def normalize(candidate: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize every editable field present in candidate.

    This is the form submitted to the server: lowercase username and email,
    trimmed display name, phone without separators.
    """
    return {
        name: normalize_field(name, candidate[name])
        for name in EDITABLE_FIELDS
        if name in candidate
    }


def _check_username(value: Any) -> str | None:
    username = normalize_username(value)
    if not username:
        return MSG_REQUIRED
    if not USERNAME_PATTERN.match(username):
        return MSG_USERNAME
    return None


def _check_display_name(value: Any) -> str | None:
    display_name = normalize_display_name(value)
    if not display_name:
        return MSG_REQUIRED
    if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
        return MSG_DISPLAY_NAME_LENGTH
    if not display_name.isprintable():
        return MSG_DISPLAY_NAME_PRINTABLE
    return None


def _check_email(value: Any) -> str | None:
    email = normalize_email(value)
    if not email:
        return MSG_REQUIRED
    if not EMAIL_PATTERN.match(email):
        return MSG_EMAIL
    return None


def _check_phone(value: Any) -> str | None:
    phone = normalize_phone(value)
    if phone is None:
        return None
    if not PHONE_PATTERN.match(phone):
        return MSG_PHONE
    return None


def _check_roles(value: Any) -> str | None:
    roles = normalize_roles(value)
    if not roles:
        return MSG_ROLES
    for role in roles:
        if role not in _KNOWN_ROLES:
            return f"Unknown role: {role}"
    return None


def _check_enabled(value: Any) -> str | None:
    if not isinstance(value, bool):
        return MSG_ENABLED
    return None


_RULES = {
    "username": _check_username,
    "display_name": _check_display_name,
    "email": _check_email,
    "phone": _check_phone,
    "roles": _check_roles,
    "enabled": _check_enabled,
}


def validate_field(name: str, value: Any) -> str | None:
    """Validate a single field.

    Returns:
        Error message, or None if the value is valid
    """
    rule = _RULES.get(name)
    if rule is None:
        return None
    return rule(value)


def validate(candidate: Mapping[str, Any], fields: Iterable[str] | None = None) -> dict[str, str]:
    """Validate a whole candidate record.

    Args:
        candidate: Draft mapping keyed by snake_case field name
        fields: Restrict validation to these fields (default: all editable)

    Returns:
        Mapping of field name to message; empty when the record is valid
    """
    errors: dict[str, str] = {}
    for name in fields if fields is not None else EDITABLE_FIELDS:
        if name == "enabled" and name not in candidate:
            continue
        message = validate_field(name, candidate.get(name))
        if message is not None:
            errors[name] = message
    return errors


def missing_required(candidate: Mapping[str, Any]) -> list[str]:
    """List required fields that are absent or blank."""
    missing = []
    for name in REQUIRED_FIELDS:
        value = normalize_field(name, candidate.get(name))
        if not value:
            missing.append(name)
    return missing
