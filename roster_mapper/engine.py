"""
Single-pass roster import.

    received -> header_matched -> preflight_checked -> rows_transformed
             -> rows_validated -> serialized

Any failure is terminal for the import and is raised as a RosterImportError
whose ``stage`` is the last stage that completed. Nothing here performs I/O;
the caller decides whether to email, store or stream the resulting CSV.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from roster_mapper.errors import RosterImportError
from roster_mapper.headers import match_headers, output_header, require_roster_headers
from roster_mapper.loader import load_roster
from roster_mapper.templates import Template
from roster_mapper.transform import transform_rows
from roster_mapper.validation import check_row_completeness, enforce_declared_requirements


class ImportStage(str, Enum):
    RECEIVED = "received"
    HEADER_MATCHED = "header_matched"
    PREFLIGHT_CHECKED = "preflight_checked"
    ROWS_TRANSFORMED = "rows_transformed"
    ROWS_VALIDATED = "rows_validated"
    SERIALIZED = "serialized"


@dataclass
class ImportResult:
    header: list[str]
    rows: list[list[str]]
    csv_text: str
    column_mapping: dict[str, str | None]
    stage: ImportStage = ImportStage.SERIALIZED
    warnings: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def csv_bytes(self) -> bytes:
        return self.csv_text.encode("utf-8")

    def summary(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "row_count": self.row_count,
            "column_count": len(self.header),
            "column_mapping": dict(self.column_mapping),
            "warnings": list(self.warnings),
        }


def serialize_csv(header: list[str], rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def transform_roster(
    headers: list[str],
    roster_rows: list[dict[str, str]],
    template: Template,
    field_defaults: dict[str, str] | None = None,
    *,
    warnings: list[str] | None = None,
) -> ImportResult:
    """Run every stage after the roster has been parsed into rows."""
    defaults = dict(field_defaults or {})
    columns = list(template.columns)
    stage = ImportStage.RECEIVED

    require_roster_headers(headers, stage=stage.value)
    column_mapping = match_headers(columns, headers)
    stage = ImportStage.HEADER_MATCHED

    enforce_declared_requirements(template, column_mapping, defaults, stage=stage.value)
    stage = ImportStage.PREFLIGHT_CHECKED

    output_rows = transform_rows(roster_rows, column_mapping, defaults, columns)
    stage = ImportStage.ROWS_TRANSFORMED

    check_row_completeness(template, output_rows, stage=stage.value)
    stage = ImportStage.ROWS_VALIDATED

    header = [output_header(column) for column in columns]
    return ImportResult(
        header=header,
        rows=output_rows,
        csv_text=serialize_csv(header, output_rows),
        column_mapping=column_mapping,
        stage=ImportStage.SERIALIZED,
        warnings=list(warnings or []),
    )


def run_import(
    content: bytes,
    template: Template,
    field_defaults: dict[str, str] | None = None,
    *,
    file_name: str = "roster.csv",
) -> ImportResult:
    try:
        roster = load_roster(content, file_name)
    except RosterImportError as exc:
        exc.stage = ImportStage.RECEIVED.value
        raise
    return transform_roster(
        roster["headers"],
        roster["rows"],
        template,
        field_defaults,
        warnings=roster["warnings"],
    )
