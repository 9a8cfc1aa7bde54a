from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


Cell = Optional[Dict[str, Any]]


@dataclass(frozen=True)
class RawTable:
    category: str
    headers: List[str] = field(default_factory=list)
    rows: List[List[Cell]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.rows


@dataclass(frozen=True)
class RecordLocator:
    """Address of a record in the source sheet.

    The physical row number is the only identifier the script endpoint
    understands. Anything that needs to point at a record (edits, jump
    targets, processing updates) goes through this type.
    """

    category: str
    row: int

    @classmethod
    def from_data_index(cls, category: str, index: int, header_offset: int = 2) -> "RecordLocator":
        return cls(category=category, row=index + header_offset)

    @property
    def key(self) -> str:
        return f"{self.category}-{self.row}"


@dataclass(frozen=True)
class DefectRecord:
    locator: RecordLocator
    timestamp_display: str = ""
    timestamp: Optional[datetime] = None
    reporter_name: str = ""
    title: str = ""
    location: str = ""
    is_processed: bool = False
    has_operator_note: bool = False
    values: Tuple[str, ...] = ()

    @property
    def category(self) -> str:
        return self.locator.category

    @property
    def row(self) -> int:
        return self.locator.row

    def displayed(self, max_columns: int) -> Tuple[str, ...]:
        return self.values[:max_columns]
