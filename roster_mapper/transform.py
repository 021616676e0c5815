from __future__ import annotations

from roster_mapper.dates import format_output_value


def resolve_value(
    row: dict[str, str],
    column: str,
    column_mapping: dict[str, str | None],
    field_defaults: dict[str, str],
) -> str:
    header = column_mapping.get(column)
    if header is not None:
        raw = row.get(header)
    else:
        raw = field_defaults.get(column)
    return (raw or "").strip()


def transform_row(
    row: dict[str, str],
    column_mapping: dict[str, str | None],
    field_defaults: dict[str, str],
    template_columns: list[str],
) -> list[str]:
    return [
        format_output_value(column, resolve_value(row, column, column_mapping, field_defaults))
        for column in template_columns
    ]


def transform_rows(
    roster_rows: list[dict[str, str]],
    column_mapping: dict[str, str | None],
    field_defaults: dict[str, str],
    template_columns: list[str],
) -> list[list[str]]:
    """One output row per roster row, cells in template column order."""
    columns = list(template_columns)
    return [transform_row(row, column_mapping, field_defaults, columns) for row in roster_rows]
