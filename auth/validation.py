"""
auth/validation.py -- Input rules for names, emails and passwords.

Two password policies coexist and are kept distinct on purpose:

  registration  -- at least 8 characters, one letter, one digit.
  strong        -- at least 8 characters plus upper, lower, digit and a
                   special character. Applies to profile password changes
                   and to reset-password submissions.

Unifying them would change which passwords are accepted at sign-up, so each
flow calls its own check. Every check raises a ValidationError subclass
(WeakPassword for strength failures) and returns the cleaned value.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re

from auth.errors import ValidationError, WeakPassword
from auth.models import canonical_email

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
EMAIL_MIN_LENGTH = 6
EMAIL_MAX_LENGTH = 254

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
PROFILE_NAME_PATTERN = re.compile(r"^[A-Za-z\s.\-]+$")
FREE_TEXT_MAX_LENGTH = 100

PASSWORD_MIN_LENGTH = 8

_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_UPPER = re.compile(r"[A-Z]")
_HAS_LOWER = re.compile(r"[a-z]")
_HAS_DIGIT = re.compile(r"\d")
_HAS_SPECIAL = re.compile(r"[^A-Za-z\d]")


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


def is_valid_email(email: str | None) -> bool:
    """True when the canonical form is 6-254 chars and matches EMAIL_PATTERN."""
    normalized = canonical_email(email)
    if not (EMAIL_MIN_LENGTH <= len(normalized) <= EMAIL_MAX_LENGTH):
        return False
    return EMAIL_PATTERN.match(normalized) is not None


def validate_email(email: str | None) -> str:
    """Return the canonical email or raise ValidationError."""
    normalized = canonical_email(email)
    if not normalized:
        raise ValidationError("Email address is required.", field="email")
    if not is_valid_email(normalized):
        raise ValidationError("Please enter a valid email address.", field="email")
    return normalized


# ---------------------------------------------------------------------------
# Names and free text
# ---------------------------------------------------------------------------


def validate_registration_name(name: str | None) -> str:
    """Registration only checks presence and length."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Full name is required.", field="name")
    if len(cleaned) < NAME_MIN_LENGTH:
        raise ValidationError("Name must be at least 2 characters long.", field="name")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise ValidationError("Name cannot exceed 100 characters.", field="name")
    return cleaned


def validate_profile_name(name: str | None) -> str:
    """Profile edits add a character whitelist on top of the length rules."""
    cleaned = validate_registration_name(name)
    if not PROFILE_NAME_PATTERN.match(cleaned):
        raise ValidationError("Name can only contain letters, spaces, hyphens and periods.", field="name")
    return cleaned


def validate_free_text(value: str | None, field: str) -> str | None:
    """Optional text (department, location): blank becomes None, max 100 chars."""
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > FREE_TEXT_MAX_LENGTH:
        raise ValidationError(f"{field.capitalize()} cannot exceed 100 characters.", field=field)
    return cleaned


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def validate_registration_password(password: str | None) -> str:
    if not password:
        raise ValidationError("Password is required.", field="password")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPassword("Password must be at least 8 characters long.")
    if not _HAS_LETTER.search(password) or not _HAS_DIGIT.search(password):
        raise WeakPassword("Password must contain at least one letter and one number.")
    return password


def validate_strong_password(password: str | None, field: str = "new_password") -> str:
    if not password:
        raise ValidationError("New password is required.", field=field)
    if len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPassword("Password must be at least 8 characters long.", field=field)
    checks = (_HAS_UPPER, _HAS_LOWER, _HAS_DIGIT, _HAS_SPECIAL)
    if not all(pattern.search(password) for pattern in checks):
        raise WeakPassword("Password must contain uppercase, lowercase, number, and special character.", field=field)
    return password
