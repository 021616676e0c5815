from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from roster_mapper.headers import BIRTH_DATE_KEY, normalize_header

DAY_FIRST = "day_first"
MONTH_FIRST = "month_first"

BOOKING_MARKER = "bookedat"
DAY_MONTH_HINT = "ddmm"
MONTH_DAY_HINT = "mmdd"

# 2024-03-05, 2024/3/5 10:30, 2024.03.05T10:30:00Z
YEAR_FIRST_RE = re.compile(r"^(\d{4})[./-](\d{1,2})[./-](\d{1,2})(?!\d)(.*)$", re.DOTALL)
# 05/03/2024, 5-3-24, 05.03.2024 09:00
SMALL_FIRST_RE = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})(?!\d)(.*)$", re.DOTALL)

TWO_DIGIT_YEAR_PIVOT = 70


@dataclass(frozen=True)
class DateContext:
    """Everything the orientation rules may look at for one cell."""

    column_key: str
    first: int | None = None
    second: int | None = None

    @property
    def is_birth_date(self) -> bool:
        return self.column_key == BIRTH_DATE_KEY

    @property
    def is_booking(self) -> bool:
        return BOOKING_MARKER in self.column_key


def is_date_column(column: str) -> bool:
    key = normalize_header(column)
    return "date" in key or BOOKING_MARKER in key or key == BIRTH_DATE_KEY


def expand_year(raw_year: str) -> int:
    year = int(raw_year)
    if len(raw_year) == 2:
        return 1900 + year if year >= TWO_DIGIT_YEAR_PIVOT else 2000 + year
    return year


# ══════════════════════════════════════════════════════════════════════════════
# ORIENTATION RULES
# Evaluated top-down; the first rule that returns an orientation wins.
# ══════════════════════════════════════════════════════════════════════════════

def rule_unambiguous_value(ctx: DateContext) -> str | None:
    if ctx.first is None or ctx.second is None:
        return None
    if ctx.first > 12 and ctx.second <= 12:
        return DAY_FIRST
    if ctx.second > 12 and ctx.first <= 12:
        return MONTH_FIRST
    return None


def rule_birth_date(ctx: DateContext) -> str | None:
    return DAY_FIRST if ctx.is_birth_date else None


def rule_day_month_hint(ctx: DateContext) -> str | None:
    return DAY_FIRST if DAY_MONTH_HINT in ctx.column_key else None


def rule_month_day_hint(ctx: DateContext) -> str | None:
    return MONTH_FIRST if MONTH_DAY_HINT in ctx.column_key else None


def rule_booking_timestamp(ctx: DateContext) -> str | None:
    return MONTH_FIRST if ctx.is_booking else None


def rule_default(ctx: DateContext) -> str | None:
    return MONTH_FIRST


# The value-shape rule beats every header hint: 13/2/24 is 13 February even
# under an (mm/dd/yyyy) header.
ORIENTATION_RULES: list[tuple[str, Callable[[DateContext], str | None]]] = [
    ("unambiguous_value", rule_unambiguous_value),
    ("birth_date_day_first", rule_birth_date),
    ("day_month_hint", rule_day_month_hint),
    ("month_day_hint", rule_month_day_hint),
    ("booking_month_first", rule_booking_timestamp),
    ("default_month_first", rule_default),
]


def resolve_orientation(ctx: DateContext) -> tuple[str, str]:
    """Return ``(orientation, rule_name)`` for the first rule that fires."""
    for name, rule in ORIENTATION_RULES:
        orientation = rule(ctx)
        if orientation is not None:
            return orientation, name
    return MONTH_FIRST, "default_month_first"


def render_date(day: int, month: int, year: int, orientation: str, suffix: str = "") -> str:
    if orientation == DAY_FIRST:
        return f"{day:02d}/{month:02d}/{year:04d}{suffix}"
    return f"{month:02d}/{day:02d}/{year:04d}{suffix}"


def _in_range(day: int, month: int) -> bool:
    return 1 <= day <= 31 and 1 <= month <= 12


def normalise_date_value(column: str, raw_value: str) -> tuple[str, bool, str]:
    """
    Reformat one date-like cell.

    Returns ``(value, changed, rule_name)``. Values that do not parse as one of
    the two recognised shapes, or that land outside day 1..31 / month 1..12,
    come back unchanged with ``changed`` False.
    """
    value = raw_value
    key = normalize_header(column)

    m = YEAR_FIRST_RE.match(value)
    if m:
        year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if not _in_range(day, month):
            return raw_value, False, ""
        orientation, rule = resolve_orientation(DateContext(column_key=key))
        return render_date(day, month, year, orientation, m.group(4)), True, rule

    m = SMALL_FIRST_RE.match(value)
    if m:
        first, second = int(m.group(1)), int(m.group(2))
        year = expand_year(m.group(3))
        orientation, rule = resolve_orientation(DateContext(column_key=key, first=first, second=second))
        day, month = (first, second) if orientation == DAY_FIRST else (second, first)
        if not _in_range(day, month):
            return raw_value, False, ""
        return render_date(day, month, year, orientation, m.group(4)), True, rule

    return raw_value, False, ""


def format_output_value(column: str, raw_value: str) -> str:
    """Value as it should appear in the output CSV for ``column``."""
    if not raw_value or not is_date_column(column):
        return raw_value
    value, _, _ = normalise_date_value(column, raw_value)
    return value
