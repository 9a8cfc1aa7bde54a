from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
import requests

from tracker.charts import category_activity_chart, to_vega_spec
from tracker.config import CategorySpec, TrackerSettings, resolve_settings
from tracker.data import fetch_tables
from tracker.normalize import normalize_table, records_frame
from tracker.records import DefectRecord, RecordLocator


logger = logging.getLogger(__name__)


def month_sort_key(month_key: str) -> tuple:
    """Sort key for "MM/YYYY" strings, newest first when used with reverse=True."""
    try:
        month, year = (int(p) for p in month_key.split("/"))
    except ValueError:
        return (0, 0)
    return (year, month)


def summarize_category(spec: CategorySpec, records: Sequence[DefectRecord], *, failed: bool = False) -> Dict[str, Any]:
    detected = len(records)
    processed = sum(1 for r in records if r.is_processed)
    operator_notes = sum(1 for r in records if r.has_operator_note)
    return {
        "name": spec.name,
        "short_name": spec.short_name,
        "detected": detected,
        "processed": processed,
        "pending": detected - processed,
        "operator_notes": operator_notes,
        "failed": failed,
    }


def compute_contributors(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    if frame.empty:
        return []
    named = frame[frame["reporter_name"].astype(str).str.strip() != ""].copy()
    if named.empty:
        return []
    named["contributor"] = named["reporter_name"].astype(str).str.strip().str.upper()
    ts = pd.to_datetime(named["timestamp"], errors="coerce")
    named["month_key"] = ts.dt.strftime("%m/%Y").where(ts.notna(), None)

    totals = named.groupby("contributor", sort=False).size().rename("total").reset_index()
    # stable sort keeps first-seen order among equal totals
    totals = totals.sort_values("total", ascending=False, kind="mergesort")

    monthly: Dict[str, Dict[str, int]] = {}
    for name, key in zip(named["contributor"], named["month_key"]):
        if key is None or pd.isna(key):
            continue
        bucket = monthly.setdefault(name, {})
        bucket[key] = bucket.get(key, 0) + 1

    out: List[Dict[str, Any]] = []
    for name, total in zip(totals["contributor"], totals["total"]):
        per_month = monthly.get(name, {})
        buckets = {k: per_month[k] for k in sorted(per_month, key=month_sort_key, reverse=True)}
        out.append({"name": name, "total": int(total), "monthly": buckets})
    return out


def compute_recent_activity(frame: pd.DataFrame, limit: int = 5) -> List[Dict[str, Any]]:
    """Most recent records first; undated records rank lowest, ties go to the higher row."""
    if frame.empty:
        return []
    ranked = frame.copy()
    ranked["_sort_ts"] = pd.to_datetime(ranked["timestamp"], errors="coerce").fillna(pd.Timestamp.min)
    ranked = ranked.sort_values(["_sort_ts", "row"], ascending=[False, False], kind="mergesort").head(limit)

    out: List[Dict[str, Any]] = []
    for rec in ranked.to_dict(orient="records"):
        locator = RecordLocator(category=str(rec["category"]), row=int(rec["row"]))
        out.append(
            {
                "time": rec["timestamp_display"] or "N/A",
                "title": rec["title"],
                "location": rec["location"],
                "category": locator.category,
                "row": locator.row,
                "is_done": bool(rec["is_processed"]),
                "key": locator.key,
            }
        )
    return out


def compute_dashboard(
    records_by_category: Mapping[str, Sequence[DefectRecord]],
    *,
    failures: Optional[Mapping[str, str]] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    failures = dict(failures or {})

    summaries: List[Dict[str, Any]] = []
    all_records: List[DefectRecord] = []
    for spec in settings.categories:
        records = list(records_by_category.get(spec.name, []))
        summaries.append(summarize_category(spec, records, failed=spec.name in failures))
        all_records.extend(records)

    totals = {
        "total": sum(s["detected"] for s in summaries),
        "processed": sum(s["processed"] for s in summaries),
        "pending": sum(s["pending"] for s in summaries),
    }
    frame = records_frame(all_records)

    return {
        "totals": totals,
        "categories": summaries,
        "contributors": compute_contributors(frame),
        "recent": compute_recent_activity(frame, limit=settings.recent_limit),
        "charts": {"activity": to_vega_spec(category_activity_chart(summaries))},
        "failed_categories": sorted(failures),
    }


def load_dashboard(
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    tables, failures = fetch_tables(settings.category_names, session=session, settings=settings)

    records_by_category: Dict[str, List[DefectRecord]] = {}
    for name, table in tables.items():
        try:
            records_by_category[name] = normalize_table(table, settings)
        except Exception as exc:
            logger.exception("normalize failed for %s", name)
            failures[name] = str(exc)
    if failures:
        logger.warning("dashboard built without: %s", ", ".join(sorted(failures)))
    return compute_dashboard(records_by_category, failures=failures, settings=settings)
