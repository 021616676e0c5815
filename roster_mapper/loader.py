"""
loader.py — roster file loader for roster-mapper

Supports: .csv .tsv .txt .xlsx .xlsm

Public API:
    roster = load_roster(raw_bytes, "participants.csv")
    roster["headers"], roster["rows"]

Result dict keys:
    headers           — trimmed header row, in file order
    rows              — list of {header: trimmed cell value}, one per data row
    row_count         — len(rows)
    detected_format   — "csv", "xlsx", ...
    detected_encoding — encoding name for text files; None for workbooks
    delimiter         — delimiter for text files; None for workbooks
    warnings          — list of warning strings
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any

import chardet
import pandas as pd

from roster_mapper.errors import StructuralError

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding_info(raw: bytes) -> dict:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    is_utf8 = detected.upper().replace("-", "") in ("UTF8", "UTF8SIG", "ASCII")
    return {
        "detected":   detected,
        "confidence": confidence,
        "is_utf8":    is_utf8,
    }


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Strips the BOM and embedded null bytes.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def decode_bytes(raw: bytes) -> dict:
    enc_info = _detect_encoding_info(raw)
    enc = enc_info["detected"] if enc_info["detected"] != "unknown" else "utf-8"
    return {
        "text":          _read_text_safely(raw, enc),
        "encoding":      enc,
        "encoding_info": enc_info,
    }


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def detect_delimiter(text: str) -> str:
    """Tab when the content has tabs and no commas; comma otherwise."""
    if "\t" in text and "," not in text:
        return "\t"
    return ","


def read_delimited_rows(text: str, delimiter: str) -> list[list[str]]:
    """Parse delimited text with the csv module, skipping blank lines."""
    return [
        row
        for row in csv.reader(io.StringIO(text), delimiter=delimiter)
        if any(cell.strip() for cell in row)
    ]


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _grid_from_text(raw: bytes, suffix: str) -> tuple[pd.DataFrame, dict]:
    decoded = decode_bytes(raw)
    text = decoded["text"]
    if not text.strip():
        raise StructuralError("CSV file is empty.")

    delimiter = "\t" if suffix == ".tsv" else detect_delimiter(text)
    try:
        grid = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            sep=delimiter,
            engine="python",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as exc:
        raise StructuralError(f"Could not parse CSV file: {exc}") from exc

    return grid, {
        "detected_format":   suffix.lstrip(".") or "csv",
        "detected_encoding": decoded["encoding"],
        "delimiter":         delimiter,
    }


def _grid_from_workbook(raw: bytes, suffix: str) -> tuple[pd.DataFrame, dict]:
    try:
        grid = pd.read_excel(
            io.BytesIO(raw),
            header=None,
            dtype=str,
            keep_default_na=False,
            engine="openpyxl",
        )
    except Exception as exc:
        raise StructuralError(f"Could not read workbook: {exc}") from exc

    return grid, {
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
    }


def _cell_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def load_roster(raw: bytes, file_name: str = "roster.csv") -> dict:
    """
    Materialise an uploaded roster into headers and row dicts.

    Raises StructuralError for empty files, unparseable content, duplicate or
    missing headers, and files with a header row but no data rows.
    """
    suffix = Path(file_name).suffix.lower() or ".csv"
    if suffix not in ALL_FORMATS:
        raise StructuralError(
            f"Unsupported roster file type '{suffix}'. Supported: {', '.join(sorted(ALL_FORMATS))}"
        )
    if not raw:
        raise StructuralError("CSV file is empty.")

    if suffix in EXCEL_FORMATS:
        grid, meta = _grid_from_workbook(raw, suffix)
    else:
        grid, meta = _grid_from_text(raw, suffix)

    records = [[_cell_text(value) for value in row] for row in grid.itertuples(index=False, name=None)]
    records = [row for row in records if any(row)]
    if not records:
        raise StructuralError("CSV file is empty.")

    headers = records[0]
    while headers and not headers[-1]:
        headers = headers[:-1]
    if not headers or any(not header for header in headers):
        raise StructuralError("CSV header row has blank column names.")

    duplicates = sorted({header for header in headers if headers.count(header) > 1})
    if duplicates:
        raise StructuralError(f"CSV has duplicate columns: {', '.join(duplicates)}")

    warnings: list[str] = []
    rows: list[dict[str, str]] = []
    for row_number, record in enumerate(records[1:], start=1):
        if any(record[len(headers):]):
            warnings.append(f"data row {row_number}: values beyond the last header were ignored")
        padded = record + [""] * (len(headers) - len(record))
        rows.append(dict(zip(headers, padded)))

    if not rows:
        raise StructuralError("CSV has no rows.")

    return {
        "headers":   headers,
        "rows":      rows,
        "row_count": len(rows),
        "warnings":  warnings,
        **meta,
    }
