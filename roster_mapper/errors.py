"""
Error taxonomy for roster imports.

Every rejection is terminal for the current import attempt. The message of
each error is meant to be shown to the person who uploaded the file as-is.
"""

from __future__ import annotations

from typing import Any


class RosterMapperError(Exception):
    """Base class for all errors raised by roster-mapper."""

    kind = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class RosterImportError(RosterMapperError):
    """An import was rejected. ``stage`` names the last stage that completed."""

    kind = "import"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["stage"] = self.stage
        return payload


class StructuralError(RosterImportError):
    kind = "structural"


class MissingRequiredFieldsError(RosterImportError):
    kind = "missing_required_fields"

    def __init__(self, missing: list[str], *, stage: str | None = None) -> None:
        super().__init__(f"Missing required fields: {', '.join(missing)}", stage=stage)
        self.missing = list(missing)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["missing"] = list(self.missing)
        return payload


class RowValueError(RosterImportError):
    kind = "row_value"

    def __init__(self, row_number: int, column: str, *, stage: str | None = None) -> None:
        super().__init__(
            f"Row {row_number} is missing a required value for {column}.",
            stage=stage,
        )
        self.row_number = row_number
        self.column = column

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["row"] = self.row_number
        payload["column"] = self.column
        return payload


class InvalidFieldValuesError(RosterImportError):
    kind = "invalid_field_values"


class TemplateError(RosterMapperError):
    kind = "template"


class TemplateNotFoundError(TemplateError):
    kind = "template_not_found"


class DeliveryError(RosterMapperError):
    kind = "delivery"


class ConfigError(RosterMapperError):
    kind = "config"
