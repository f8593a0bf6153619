"""Input parsing helpers shared by the JSON endpoints.

Parsers return ``(value, error)`` pairs so a view can collect every problem
with a payload before answering, then raise a single ``ValidationError``.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable
from urllib.parse import urlparse

from flask import request

from supplyhub.errors import ValidationError

MAX_TEXT_LENGTH = 100

# Upper bound of an INTEGER column on PostgreSQL.
MAX_INTEGER = 2**31 - 1

_REFERENCE_TEXT = re.compile(r"^[a-zA-Z0-9 ,./()&'\-]+$")
_REFERENCE_DATE = re.compile(r"^[a-zA-Z0-9 ,./()&'\-:]+$")

TRUE_VALUES = {"1", "true", "yes", "on"}


def request_payload() -> dict:
    """Return the JSON body, falling back to submitted form fields."""

    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def clean_text(value) -> str | None:
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip() if value is not None else ""
    return text or None


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUE_VALUES


def parse_int(
    value,
    *,
    field_label: str,
    minimum: int | None = 0,
    maximum: int | None = MAX_INTEGER,
    required: bool = True,
) -> tuple[int | None, str | None]:
    if isinstance(value, bool):
        return None, f"{field_label} must be a whole number."
    text = str(value).strip() if value is not None else ""
    if not text:
        if required:
            return None, f"{field_label} is required."
        return None, None
    try:
        number = int(text)
    except (TypeError, ValueError):
        return None, f"{field_label} must be a whole number."
    if minimum is not None and number < minimum:
        return None, f"{field_label} must be at least {minimum}."
    if maximum is not None and number > maximum:
        return None, f"{field_label} must be at most {maximum}."
    return number, None


def parse_date(value, *, field_label: str) -> tuple[date | None, str | None]:
    text = (value or "").strip()
    if not text:
        return None, None
    try:
        parsed = datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None, f"Enter {field_label} in YYYY-MM-DD format."
    return parsed, None


def check_reference_text(
    value, *, field_label: str, allow_colon: bool = False
) -> tuple[str | None, str | None]:
    """Validate a memorandum or reference-list field."""

    text = clean_text(value)
    if text is None:
        return None, f"{field_label} is required."
    if len(text) > MAX_TEXT_LENGTH:
        return None, f"{field_label} must be at most {MAX_TEXT_LENGTH} characters."
    pattern = _REFERENCE_DATE if allow_colon else _REFERENCE_TEXT
    if not pattern.match(text):
        return None, f"{field_label} contains invalid characters."
    return text, None


def check_bounded_text(value, *, field_label: str) -> tuple[str | None, str | None]:
    text = clean_text(value)
    if text is None:
        return None, f"{field_label} is required."
    if len(text) > MAX_TEXT_LENGTH:
        return None, f"{field_label} must be at most {MAX_TEXT_LENGTH} characters."
    return text, None


def check_url(value, *, field_label: str) -> tuple[str | None, str | None]:
    text = clean_text(value)
    if text is None:
        return None, f"{field_label} is required."
    parsed = urlparse(text)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None, f"{field_label} must be a valid URL."
    return text, None


def check_choice(
    value, *, field_label: str, choices: Iterable[str]
) -> tuple[str | None, str | None]:
    text = clean_text(value)
    if text is None:
        return None, f"{field_label} is required."
    text = text.upper()
    if text not in set(choices):
        return None, f"Select a valid {field_label.lower()}."
    return text, None


def raise_for_errors(errors: list[str], message: str = "Invalid input") -> None:
    if errors:
        raise ValidationError(message, errors)


def parse_page(value) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return min(max(page, 1), MAX_INTEGER)


def parse_sort(
    value: str | None, *, allowed: Iterable[str], default: tuple[str, str]
) -> tuple[str, str]:
    """Parse ``field:direction`` sort expressions against a whitelist."""

    text = (value or "").strip()
    if not text:
        return default
    field, _, direction = text.partition(":")
    direction = (direction or "asc").lower()
    if field not in set(allowed) or direction not in {"asc", "desc"}:
        return default
    return field, direction


def parse_id_list(value: str | None) -> list[int]:
    ids: list[int] = []
    for chunk in (value or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            number = int(chunk)
        except ValueError:
            raise ValidationError(f"Invalid id: {chunk}") from None
        if abs(number) > MAX_INTEGER:
            raise ValidationError(f"Invalid id: {chunk}")
        ids.append(number)
    return ids
