"""Read path: gviz queries against the defect spreadsheet."""

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests

from tracker.config import TrackerSettings, resolve_settings
from tracker.errors import FetchError
from tracker.records import RawTable


logger = logging.getLogger(__name__)

RESPONSE_PATTERN = re.compile(r"google\.visualization\.Query\.setResponse\((.*)\);", re.DOTALL)


def build_query_url(category: str, settings: Optional[TrackerSettings] = None) -> str:
    settings = resolve_settings(settings)
    return settings.read_url_template.format(sheet_id=settings.sheet_id, sheet=quote(category, safe=""))


def parse_query_response(text: str, category: str) -> RawTable:
    match = RESPONSE_PATTERN.search(text or "")
    if not match:
        raise FetchError("response envelope not found", category=category)
    try:
        payload = json.loads(match.group(1))
    except ValueError as exc:
        raise FetchError(f"malformed JSON in response: {exc}", category=category) from exc

    table = payload.get("table") if isinstance(payload, dict) else None
    if not isinstance(table, dict) or not isinstance(table.get("rows"), list):
        return RawTable(category=category)

    headers = [str((col or {}).get("label") or "") for col in (table.get("cols") or [])]
    rows: List[list] = []
    for row in table["rows"]:
        cells = (row or {}).get("c") if isinstance(row, dict) else None
        rows.append([c if isinstance(c, dict) else None for c in (cells or [])])
    return RawTable(category=category, headers=headers, rows=rows)


def fetch_table(
    category: str,
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> RawTable:
    settings = resolve_settings(settings)
    http = session or requests
    url = build_query_url(category, settings)
    try:
        response = http.get(url, timeout=settings.request_timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"request failed: {exc}", category=category) from exc
    table = parse_query_response(response.text, category)
    logger.debug("fetched %s: %d columns, %d rows", category, len(table.headers), len(table.rows))
    return table


def fetch_tables(
    categories: Iterable[str],
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
    max_workers: int = 4,
) -> Tuple[Dict[str, RawTable], Dict[str, str]]:
    """Fetch several sheets concurrently and join all of them.

    Returns the tables that arrived and, separately, the error message of
    every category that failed. A failed category never hides the others.
    """
    categories = list(categories)
    tables: Dict[str, RawTable] = {}
    failures: Dict[str, str] = {}
    if not categories:
        return tables, failures

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(categories)))) as pool:
        futures = {cat: pool.submit(fetch_table, cat, session=session, settings=settings) for cat in categories}
        for cat, future in futures.items():
            try:
                tables[cat] = future.result()
            except Exception as exc:
                logger.exception("fetch failed for %s", cat)
                failures[cat] = str(exc)
    return tables, failures
