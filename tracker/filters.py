from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional

Status = Literal["all", "processed", "pending"]

ALL = "all"
STATUSES = ("all", "processed", "pending")
MONTH_TOKEN = re.compile(r"(\d{2})/(\d{4})")


@dataclass(frozen=True)
class ViewFilters:
    search: str = ""
    month: str = ALL
    status: Status = "all"

    @property
    def is_unfiltered(self) -> bool:
        return not self.search and self.month == ALL and self.status == ALL


def _as_month(value: object) -> str:
    s = str(value or "").strip()
    if not s or s.lower() == ALL:
        return ALL
    match = MONTH_TOKEN.fullmatch(s)
    return f"{match.group(1)}/{match.group(2)}" if match else ALL


def normalize_filters(raw: Optional[dict]) -> ViewFilters:
    raw = raw or {}
    search = str(raw.get("search") or "").strip()

    status = str(raw.get("status") or ALL).strip().lower()
    if status not in STATUSES:
        status = ALL

    return ViewFilters(search=search, month=_as_month(raw.get("month")), status=status)  # type: ignore[arg-type]
