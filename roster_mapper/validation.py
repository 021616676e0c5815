"""
Completeness checks run before and after row transformation.

Pre-flight aggregates every required column that nothing can satisfy so the
organiser can fix them all in one go. The per-row check stops at the first
empty required value.
"""

from __future__ import annotations

from roster_mapper.errors import MissingRequiredFieldsError, RowValueError
from roster_mapper.headers import is_roster_field
from roster_mapper.templates import Template


def check_declared_requirements(
    template: Template,
    column_mapping: dict[str, str | None],
    field_defaults: dict[str, str],
) -> list[str]:
    """Required columns with neither a matched roster header nor a default."""
    missing: list[str] = []
    for column in template.columns:
        if not template.is_required(column) or is_roster_field(column):
            continue
        if column_mapping.get(column) is not None:
            continue
        if (field_defaults.get(column) or "").strip():
            continue
        missing.append(column)
    return missing


def enforce_declared_requirements(
    template: Template,
    column_mapping: dict[str, str | None],
    field_defaults: dict[str, str],
    *,
    stage: str | None = None,
) -> None:
    missing = check_declared_requirements(template, column_mapping, field_defaults)
    if missing:
        raise MissingRequiredFieldsError(missing, stage=stage)


def check_row_completeness(
    template: Template,
    output_rows: list[list[str]],
    *,
    stage: str | None = None,
) -> None:
    required_positions = [
        (index, column)
        for index, column in enumerate(template.columns)
        if template.is_required(column)
    ]
    for row_number, row in enumerate(output_rows, start=1):
        for index, column in required_positions:
            if not str(row[index]).strip():
                raise RowValueError(row_number, column, stage=stage)
