"""
Import templates: the fixed, ordered set of output columns an admin defines
by uploading a header-only CSV.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from roster_mapper.errors import TemplateError
from roster_mapper.headers import is_marked_required, is_roster_field
from roster_mapper.loader import decode_bytes, detect_delimiter, read_delimited_rows

DEFAULT_MAX_TEMPLATE_BYTES = 2 * 1024 * 1024


@dataclass(frozen=True)
class Template:
    columns: tuple[str, ...]
    required_columns: tuple[str, ...] = ()
    id: int | None = None
    name: str = ""
    event_name: str = ""
    race_name: str = ""
    ticket_name: str = ""
    created_at: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "required_columns", tuple(self.required_columns))
        if len(set(self.columns)) != len(self.columns):
            raise TemplateError("Template columns must be unique.")
        unknown = [column for column in self.required_columns if column not in self.columns]
        if unknown:
            raise TemplateError(f"Required columns not in template: {', '.join(unknown)}")

    @classmethod
    def from_columns(cls, columns: list[str], **metadata: Any) -> "Template":
        """Build a template whose required set follows the ``#`` marker convention."""
        required = [column for column in columns if is_marked_required(column)]
        return cls(columns=tuple(columns), required_columns=tuple(required), **metadata)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Template":
        return cls(
            columns=tuple(payload.get("columns") or ()),
            required_columns=tuple(payload.get("required_columns") or ()),
            id=payload.get("id"),
            name=payload.get("name", ""),
            event_name=payload.get("event_name", ""),
            race_name=payload.get("race_name", ""),
            ticket_name=payload.get("ticket_name", ""),
            created_at=payload.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["columns"] = list(self.columns)
        payload["required_columns"] = list(self.required_columns)
        return payload

    def is_required(self, column: str) -> bool:
        return column in self.required_columns

    @property
    def label(self) -> str:
        return f"{self.event_name} / {self.race_name} / {self.ticket_name}"

    @property
    def default_field_columns(self) -> list[str]:
        """Columns the uploader may fill once for every row."""
        return [column for column in self.columns if not is_roster_field(column)]


def extract_columns(content: str) -> list[str]:
    trimmed = content.strip()
    if not trimmed:
        return []
    rows = read_delimited_rows(trimmed, detect_delimiter(trimmed))
    header_row = rows[0] if rows else []
    return [value.strip() for value in header_row if value.strip()]


def template_from_upload(
    content: bytes,
    *,
    event_name: str,
    race_name: str,
    ticket_name: str,
    name: str = "",
    max_bytes: int = DEFAULT_MAX_TEMPLATE_BYTES,
) -> Template:
    if not content:
        raise TemplateError("Template CSV file is empty.")
    if len(content) > max_bytes:
        raise TemplateError("Template CSV file is too large.")

    event_name, race_name, ticket_name = event_name.strip(), race_name.strip(), ticket_name.strip()
    if not event_name or not race_name or not ticket_name:
        raise TemplateError("Event, race, and ticket are required.")

    columns = extract_columns(decode_bytes(content)["text"])
    if not columns:
        raise TemplateError("Template CSV has no columns.")
    duplicates = sorted({column for column in columns if columns.count(column) > 1})
    if duplicates:
        raise TemplateError(f"Template CSV has duplicate columns: {', '.join(duplicates)}")

    return Template.from_columns(
        columns,
        name=name.strip() or f"{event_name} / {race_name} / {ticket_name}",
        event_name=event_name,
        race_name=race_name,
        ticket_name=ticket_name,
    )
