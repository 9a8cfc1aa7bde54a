"""Write path: payloads posted to the Apps Script endpoints.

The script endpoints answer with opaque responses, so a write counts as done
once the request goes out without a transport error. Required fields are
checked locally first; a failed check never reaches the network.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from tracker.config import TrackerSettings, resolve_settings
from tracker.errors import SubmitError, ValidationError
from tracker.records import RecordLocator


logger = logging.getLogger(__name__)

PLAIN_TEXT_HEADERS = {"Content-Type": "text/plain;charset=utf-8"}


@dataclass(frozen=True)
class UploadedFile:
    name: str
    type: str
    data: bytes

    def encoded(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.type or 'application/octet-stream'};base64,{self.encoded()}"


def _require(value: Any, field_name: str, message: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(field_name, message)


@dataclass(frozen=True)
class ReportSubmission:
    reporter_name: str
    category: str
    area: str
    equipment_name: str
    location: str
    description: str
    files: Tuple[UploadedFile, ...] = ()

    def validate(self, settings: Optional[TrackerSettings] = None) -> None:
        settings = resolve_settings(settings)
        if not str(self.category or "").strip() or not str(self.area or "").strip():
            raise ValidationError(
                "category" if not str(self.category or "").strip() else "area",
                "Vui lòng chọn đầy đủ Phân loại và Khu vực!",
            )
        if self.category not in settings.form_values():
            raise ValidationError("category", f"unknown category: {self.category}")
        if self.area not in settings.areas:
            raise ValidationError("area", f"unknown area: {self.area}")
        _require(self.reporter_name, "reporterName", "Reporter name is required")
        _require(self.equipment_name, "equipmentName", "Equipment name is required")
        _require(self.location, "location", "Location is required")
        _require(self.description, "description", "Description is required")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "reporterName": self.reporter_name,
            "category": self.category,
            "area": self.area,
            "equipmentName": self.equipment_name,
            "location": self.location,
            "description": self.description,
            "files": [{"dataURL": f.data_url(), "type": f.type, "name": f.name} for f in self.files],
        }


@dataclass(frozen=True)
class ProcessingUpdate:
    sheet: str
    row: Optional[int]
    status: str = ""
    note: str = ""
    operator: str = ""
    files: Tuple[UploadedFile, ...] = ()

    def validate(self, settings: Optional[TrackerSettings] = None) -> None:
        settings = resolve_settings(settings)
        if not str(self.sheet or "").strip() or not self.row:
            raise ValidationError("sheet" if not str(self.sheet or "").strip() else "row", "Vui lòng chọn đầy đủ thông tin!")
        if self.sheet not in settings.category_names:
            raise ValidationError("sheet", f"unknown sheet: {self.sheet}")
        if int(self.row) < settings.header_offset:
            raise ValidationError("row", f"row {self.row} is a header row")

    def to_payload(self, settings: Optional[TrackerSettings] = None) -> Dict[str, Any]:
        settings = resolve_settings(settings)
        return {
            "action": "uploadFiles",
            "form": {
                "sheetId": settings.sheet_id,
                "sheet": self.sheet,
                "row": int(self.row) if self.row is not None else None,
                "tinhTrang": self.status,
                "ghiChu": self.note,
                "NVVH": self.operator,
                "files": [{"data": f.encoded(), "type": f.type, "name": f.name} for f in self.files],
            },
        }


@dataclass(frozen=True)
class RowEdit:
    locator: RecordLocator
    row_data: Tuple[str, ...]
    original: Tuple[str, ...] = field(default_factory=tuple)

    def validate(self, settings: Optional[TrackerSettings] = None) -> None:
        settings = resolve_settings(settings)
        if self.locator.category not in settings.category_names:
            raise ValidationError("sheetName", f"unknown sheet: {self.locator.category}")
        if self.locator.row < settings.header_offset:
            raise ValidationError("row", f"row {self.locator.row} is a header row")

    def merged_row(self, settings: Optional[TrackerSettings] = None) -> List[str]:
        """Edited values with the read-only columns pinned to their originals."""
        settings = resolve_settings(settings)
        merged = ["" if v is None else str(v) for v in self.row_data]
        for idx in settings.columns.read_only:
            if idx < len(self.original):
                while len(merged) <= idx:
                    merged.append("")
                merged[idx] = self.original[idx]
        return merged

    def to_payload(self, settings: Optional[TrackerSettings] = None) -> Dict[str, Any]:
        settings = resolve_settings(settings)
        return {
            "action": "updateRowData",
            "sheetName": self.locator.category,
            "row": self.locator.row,
            "rowData": self.merged_row(settings),
            "sheetId": settings.sheet_id,
        }


@dataclass(frozen=True)
class PendingItem:
    row: int
    col_e: str = ""
    col_f: str = ""
    col_g: str = ""


def _dispatch(url: str, payload: Dict[str, Any], *, session: Optional[requests.Session], timeout: float) -> None:
    http = session or requests
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    try:
        http.post(url, data=body, headers=PLAIN_TEXT_HEADERS, timeout=timeout)
    except requests.RequestException as exc:
        raise SubmitError(f"could not reach {url}: {exc}") from exc


def submit_report(
    report: ReportSubmission,
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    report.validate(settings)
    payload = report.to_payload()
    _dispatch(settings.report_url, payload, session=session, timeout=settings.request_timeout)
    logger.info("report dispatched: %s / %s (%d files)", report.category, report.area, len(report.files))
    return payload


def submit_processing_update(
    update: ProcessingUpdate,
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    update.validate(settings)
    payload = update.to_payload(settings)
    _dispatch(settings.process_url, payload, session=session, timeout=settings.request_timeout)
    logger.info("processing update dispatched: %s row %s", update.sheet, update.row)
    return payload


def submit_row_edit(
    edit: RowEdit,
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    edit.validate(settings)
    payload = edit.to_payload(settings)
    _dispatch(settings.process_url, payload, session=session, timeout=settings.request_timeout)
    logger.info("row edit dispatched: %s", edit.locator.key)
    return payload


def _pending_from(entry: Any) -> Optional[PendingItem]:
    if not isinstance(entry, dict):
        return None
    try:
        row = int(entry.get("row"))
    except (TypeError, ValueError):
        return None
    return PendingItem(
        row=row,
        col_e=str(entry.get("colE") or ""),
        col_f=str(entry.get("colF") or ""),
        col_g=str(entry.get("colG") or ""),
    )


def fetch_pending_list(
    sheet: str,
    *,
    session: Optional[requests.Session] = None,
    settings: Optional[TrackerSettings] = None,
) -> List[PendingItem]:
    """Unprocessed rows of one sheet, as reported by the processing script."""
    settings = resolve_settings(settings)
    if not str(sheet or "").strip():
        return []
    http = session or requests
    payload = {"action": "getPendingList", "sheetName": sheet, "sheetId": settings.sheet_id}
    try:
        response = http.post(
            settings.process_url,
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers=PLAIN_TEXT_HEADERS,
            timeout=settings.request_timeout,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError):
        logger.exception("pending list fetch failed for %s", sheet)
        return []
    if not isinstance(data, list):
        logger.warning("pending list for %s is not a list", sheet)
        return []
    items: Sequence[Optional[PendingItem]] = [_pending_from(e) for e in data]
    return [i for i in items if i is not None]
