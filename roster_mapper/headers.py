"""
Header canonicalisation and roster-to-template header matching.

Uploaded rosters arrive with whatever headers the organiser's spreadsheet
happened to use ("First Name", "first_name", "FNAME", "E-mail Address").
Everything is compared through ``normalize_header`` so those collapse onto
one canonical key. Matching is exact on the canonical key: "email" and
"emailoptout" stay distinct.
"""

from __future__ import annotations

import re
from typing import Iterable

from roster_mapper.errors import StructuralError

REQUIRED_MARKER = "#"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

FIRST_NAME_KEY = "firstname"
LAST_NAME_KEY = "lastname"
EMAIL_KEY = "email"
BIRTH_DATE_KEY = "dateofbirth"

ROSTER_FIELD_KEYS = (FIRST_NAME_KEY, LAST_NAME_KEY, EMAIL_KEY)

ROSTER_FIELD_LABELS = {
    FIRST_NAME_KEY: "First Name",
    LAST_NAME_KEY: "Last Name",
    EMAIL_KEY: "Email",
}

HEADER_ALIASES = {
    # Email
    "emailaddress": EMAIL_KEY,
    "emailaddr": EMAIL_KEY,
    "mail": EMAIL_KEY,
    # First name
    "fname": FIRST_NAME_KEY,
    "givenname": FIRST_NAME_KEY,
    "forename": FIRST_NAME_KEY,
    # Last name
    "lname": LAST_NAME_KEY,
    "surname": LAST_NAME_KEY,
    "familyname": LAST_NAME_KEY,
    # Birth date
    "dob": BIRTH_DATE_KEY,
    "birthdate": BIRTH_DATE_KEY,
    "birthday": BIRTH_DATE_KEY,
}


def strip_required_marker(name: str) -> str:
    return name.lstrip(REQUIRED_MARKER)


def is_marked_required(name: str) -> bool:
    return name.startswith(REQUIRED_MARKER)


def normalize_header(name: str) -> str:
    """Canonical comparison key for a raw column name. Never fails."""
    stripped = strip_required_marker(str(name or "").strip())
    key = _NON_ALNUM_RE.sub("", stripped.lower())
    return HEADER_ALIASES.get(key, key)


def is_roster_field(column: str) -> bool:
    return normalize_header(column) in ROSTER_FIELD_KEYS


def is_email_column(column: str) -> bool:
    return normalize_header(column) == EMAIL_KEY


def find_header(upload_headers: Iterable[str], key: str) -> str | None:
    """First upload header whose canonical key equals ``key``."""
    for header in upload_headers:
        if normalize_header(header) == key:
            return header
    return None


def match_headers(
    template_columns: list[str],
    upload_headers: list[str],
) -> dict[str, str | None]:
    """Map every template column to the first matching upload header, or None."""
    headers = list(upload_headers)
    return {column: find_header(headers, normalize_header(column)) for column in template_columns}


def find_roster_headers(upload_headers: list[str]) -> dict[str, str | None]:
    return {key: find_header(upload_headers, key) for key in ROSTER_FIELD_KEYS}


def require_roster_headers(upload_headers: list[str], *, stage: str | None = None) -> dict[str, str]:
    found = find_roster_headers(upload_headers)
    missing = [ROSTER_FIELD_LABELS[key] for key, header in found.items() if header is None]
    if missing:
        raise StructuralError(
            "CSV must include First Name, Last Name, and Email columns "
            "(any common header variation is accepted). "
            f"Not found: {', '.join(missing)}.",
            stage=stage,
        )
    return {key: header for key, header in found.items() if header is not None}


def output_header(column: str) -> str:
    """Column name as written to the output CSV header row."""
    if is_email_column(column) and not is_marked_required(column):
        return REQUIRED_MARKER + column
    return column
