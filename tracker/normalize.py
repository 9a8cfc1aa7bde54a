from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, List, Optional

import pandas as pd

from tracker.config import TrackerSettings, resolve_settings
from tracker.records import Cell, DefectRecord, RawTable, RecordLocator


RECORD_COLUMNS = [
    "category",
    "row",
    "timestamp",
    "timestamp_display",
    "reporter_name",
    "title",
    "location",
    "is_processed",
    "has_operator_note",
]


def parse_sheet_date(value: Any) -> Optional[datetime]:
    """Parse a gviz date value.

    Accepts the ``Date(2024,11,3,14,0,0)`` form (month is zero-based, so this
    one is 3 Dec 2024 14:00) and anything pandas can parse as a timestamp.
    Returns None when neither applies.
    """
    if value is None or isinstance(value, bool):
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.startswith("Date("):
        parts = [int(p) for p in re.findall(r"\d+", s)]
        if len(parts) < 3:
            return None
        parts += [0] * (6 - len(parts))
        year, month, day, hour, minute, second = parts[:6]
        try:
            return datetime(year, month + 1, day, hour, minute, second)
        except (ValueError, OverflowError):
            return None
    try:
        ts = pd.to_datetime(s, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


def cell_value(cell: Cell) -> Any:
    if not isinstance(cell, dict):
        return None
    return cell.get("v")


def cell_display(cell: Cell) -> str:
    """Formatted text if the source supplied one, else the raw value."""
    if not isinstance(cell, dict):
        return ""
    for candidate in (cell.get("f"), cell.get("v")):
        if candidate is None or candidate is False or candidate == "":
            continue
        return str(candidate)
    return ""


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _cell_at(row: List[Cell], index: int) -> Cell:
    return row[index] if 0 <= index < len(row) else None


def normalize_table(table: RawTable, settings: Optional[TrackerSettings] = None) -> List[DefectRecord]:
    settings = resolve_settings(settings)
    cols = settings.columns
    width = len(table.headers)

    records: List[DefectRecord] = []
    for idx, row in enumerate(table.rows):
        row = row or []
        values = [cell_display(c) for c in row]
        if len(values) < width:
            values.extend([""] * (width - len(values)))

        ts_cell = _cell_at(row, cols.timestamp)
        records.append(
            DefectRecord(
                locator=RecordLocator.from_data_index(table.category, idx, settings.header_offset),
                timestamp_display=cell_display(ts_cell),
                timestamp=parse_sheet_date(cell_value(ts_cell)),
                reporter_name=_text(cell_value(_cell_at(row, cols.reporter))),
                title=_text(cell_value(_cell_at(row, cols.title))) or settings.default_title,
                location=_text(cell_value(_cell_at(row, cols.location))) or settings.default_location,
                is_processed=bool(cell_display(_cell_at(row, cols.result)).strip()),
                has_operator_note=bool(cell_display(_cell_at(row, cols.operator)).strip()),
                values=tuple(values),
            )
        )
    return records


def records_frame(records: Iterable[DefectRecord]) -> pd.DataFrame:
    rows = [
        {
            "category": r.category,
            "row": r.row,
            "timestamp": r.timestamp,
            "timestamp_display": r.timestamp_display,
            "reporter_name": r.reporter_name,
            "title": r.title,
            "location": r.location,
            "is_processed": r.is_processed,
            "has_operator_note": r.has_operator_note,
        }
        for r in records
    ]
    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)
