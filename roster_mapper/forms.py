"""Field helpers for the default-values form shown next to a roster upload."""

from __future__ import annotations

from dataclasses import dataclass

from roster_mapper.dates import BOOKING_MARKER
from roster_mapper.headers import BIRTH_DATE_KEY, match_headers, normalize_header
from roster_mapper.templates import Template

GENDER_OPTIONS = ["Male", "Female", "Prefer not to say"]
OPT_OUT_OPTIONS = ["OptOut"]


@dataclass(frozen=True)
class FieldSpec:
    column: str
    kind: str
    required: bool
    options: tuple[str, ...] = ()
    covered_by: str | None = None

    @property
    def label(self) -> str:
        return f"{self.column} *" if self.required else self.column


def input_kind(column: str) -> str:
    key = normalize_header(column)
    if BOOKING_MARKER in key or key == BIRTH_DATE_KEY:
        return "date"
    if select_options(column):
        return "select"
    return "text"


def select_options(column: str) -> list[str]:
    key = normalize_header(column)
    if "gender" in key:
        return list(GENDER_OPTIONS)
    if "emailconsentoptout" in key:
        return list(OPT_OUT_OPTIONS)
    return []


def default_field_specs(template: Template, upload_headers: list[str] | None = None) -> list[FieldSpec]:
    """
    One entry per template column the uploader may fill once.

    When the roster headers are already known, ``covered_by`` names the roster
    column that will supply the value instead.
    """
    columns = template.default_field_columns
    mapping = match_headers(columns, upload_headers or [])
    return [
        FieldSpec(
            column=column,
            kind=input_kind(column),
            required=template.is_required(column),
            options=tuple(select_options(column)),
            covered_by=mapping.get(column),
        )
        for column in columns
    ]
