from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from tracker.config import TrackerSettings, resolve_settings
from tracker.data import fetch_table
from tracker.filters import ALL, MONTH_TOKEN, ViewFilters
from tracker.images import is_image_column, render_cell
from tracker.normalize import normalize_table
from tracker.records import DefectRecord, RawTable, RecordLocator
from tracker.sequencing import RequestSequencer, poll_until


logger = logging.getLogger(__name__)


def available_months(records: Iterable[DefectRecord]) -> List[str]:
    months = set()
    for r in records:
        match = MONTH_TOKEN.search(r.timestamp_display or "")
        if match:
            months.add(f"{match.group(1)}/{match.group(2)}")
    return sorted(months, key=lambda m: (int(m[3:]), int(m[:2])), reverse=True)


def filter_records(
    records: Sequence[DefectRecord],
    filters: ViewFilters,
    settings: Optional[TrackerSettings] = None,
) -> List[DefectRecord]:
    """Apply search / status / month filters. Source order is preserved."""
    records = list(records)
    if not records or filters.is_unfiltered:
        return records
    settings = resolve_settings(settings)

    mask = pd.Series(True, index=range(len(records)))
    if filters.search:
        term = filters.search.lower()
        shown = pd.DataFrame([r.displayed(settings.max_columns) for r in records]).fillna("").astype(str)
        if shown.shape[1] == 0:
            mask &= False
        else:
            hits = shown.apply(lambda col: col.str.lower().str.contains(term, regex=False))
            mask &= hits.any(axis=1)
    if filters.status != ALL:
        processed = pd.Series([r.is_processed for r in records])
        mask &= processed if filters.status == "processed" else ~processed
    if filters.month != ALL:
        dates = pd.Series([r.timestamp_display or "" for r in records], dtype=object).astype(str)
        mask &= dates.str.contains(filters.month, regex=False)
    return [r for r, keep in zip(records, mask.tolist()) if keep]


def compute_table_view(
    headers: Sequence[str],
    records: Sequence[DefectRecord],
    filters: ViewFilters,
    *,
    category: Optional[str] = None,
    jump: Optional[RecordLocator] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    shown_headers = [str(h) for h in list(headers)[: settings.max_columns]]
    filtered = filter_records(records, filters, settings)

    highlight = None
    rows: List[Dict[str, Any]] = []
    for r in filtered:
        hit = jump is not None and jump == r.locator
        if hit:
            highlight = r.row
        cells = [render_cell(v, shown_headers[i], settings) for i, v in enumerate(r.displayed(len(shown_headers)))]
        rows.append(
            {
                "row": r.row,
                "key": r.locator.key,
                "cells": cells,
                "values": list(r.values),
                "is_processed": r.is_processed,
                "highlighted": hit,
            }
        )

    return {
        "category": category or (records[0].category if records else None),
        "headers": shown_headers,
        "all_headers": [str(h) for h in headers],
        "image_columns": [i for i, h in enumerate(shown_headers) if is_image_column(h, settings)],
        "rows": rows,
        "months": available_months(records),
        "filters": asdict(filters),
        "counts": {"total": len(records), "shown": len(filtered)},
        "highlight": highlight,
    }


class TableViewSession:
    """View state for the summary table of one category at a time.

    Refreshes run in the background. Only the response to the most recent
    refresh is applied; older responses that arrive late are dropped.
    """

    def __init__(
        self,
        category: Optional[str] = None,
        *,
        loader: Optional[Callable[[str], RawTable]] = None,
        settings: Optional[TrackerSettings] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.settings = resolve_settings(settings)
        self.category = category or self.settings.category_names[0]
        self.filters = ViewFilters()
        self.jump: Optional[RecordLocator] = None
        self.headers: List[str] = []
        self.records: List[DefectRecord] = []
        self.loading = False
        self.error: Optional[str] = None

        self._loader = loader or (lambda cat: fetch_table(cat, settings=self.settings))
        self._sequencer = RequestSequencer()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._state_lock = threading.Lock()
        self._located: Optional[str] = None

    # ---------- state changes ----------
    def select_category(self, category: str) -> Future:
        self.category = category
        self.filters = replace(self.filters, month=ALL, status=ALL)
        return self.refresh()

    def set_filters(self, **changes: Any) -> ViewFilters:
        self.filters = replace(self.filters, **changes)
        return self.filters

    def apply_jump(self, locator: RecordLocator) -> Optional[Future]:
        """Switch to the jump target's category and clear the search box."""
        self.jump = locator
        self.filters = replace(self.filters, search="")
        if locator.category != self.category:
            self.category = locator.category
            return self.refresh()
        return None

    def clear_jump(self) -> None:
        self.jump = None
        self._located = None

    # ---------- fetching ----------
    def refresh(self) -> Future:
        token = self._sequencer.issue()
        with self._state_lock:
            # never show rows of the previous sheet while the new one loads
            self.loading = True
            self.headers = []
            self.records = []
            self.error = None
        return self._executor.submit(self._load, token, self.category)

    def load(self) -> bool:
        return self.refresh().result()

    def _load(self, token: int, category: str) -> bool:
        try:
            table = self._loader(category)
            records = normalize_table(table, self.settings)
        except Exception as exc:
            if self._sequencer.is_current(token):
                logger.exception("table fetch failed for %s", category)
            return self._sequencer.apply_if_current(token, lambda: self._store([], [], str(exc)))
        applied = self._sequencer.apply_if_current(token, lambda: self._store(table.headers, records, None))
        if not applied:
            logger.debug("discarded stale response #%d for %s", token, category)
        return applied

    def _store(self, headers: List[str], records: List[DefectRecord], error: Optional[str]) -> None:
        with self._state_lock:
            self.headers = list(headers)
            self.records = list(records)
            self.error = error
            self.loading = False

    # ---------- reading ----------
    def visible_records(self) -> List[DefectRecord]:
        with self._state_lock:
            records = list(self.records)
        return filter_records(records, self.filters, self.settings)

    def view(self) -> Dict[str, Any]:
        with self._state_lock:
            headers, records = list(self.headers), list(self.records)
        payload = compute_table_view(
            headers, records, self.filters, category=self.category, jump=self.jump, settings=self.settings
        )
        payload["loading"] = self.loading
        payload["error"] = self.error
        return payload

    def locate(
        self,
        locator: Optional[RecordLocator] = None,
        *,
        max_attempts: int = 30,
        interval: float = 0.15,
        initial_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Optional[DefectRecord]:
        """Wait for the jump target to show up in the visible rows.

        Rendering trails navigation, so this polls with a fixed delay and a
        capped number of attempts. A target that was already located is not
        located again until the jump changes.
        """
        target = locator or self.jump
        if target is None or self._located == target.key:
            return None

        def check() -> Optional[DefectRecord]:
            if self.loading or self.category != target.category:
                return None
            for r in self.visible_records():
                if r.locator == target:
                    return r
            return None

        found = poll_until(check, max_attempts=max_attempts, interval=interval, initial_delay=initial_delay, sleep=sleep)
        if found is not None:
            self._located = target.key
        return found

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
