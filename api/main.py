from __future__ import annotations

import logging
import math
from datetime import date
from typing import List, Optional, Tuple
from urllib.parse import quote

import numpy as np
import pandas as pd
import requests
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    PendingItemModel,
    ProcessingModel,
    ReportModel,
    RowEditModel,
    TableRequestModel,
    ViewFiltersModel,
)
from tracker.config import get_settings
from tracker.data import fetch_table
from tracker.errors import ExportError, FetchError, SubmitError, ValidationError
from tracker.export import XLSX_MEDIA_TYPE, build_workbook, export_filename, fetch_image_direct
from tracker.filters import normalize_filters
from tracker.images import is_web_link
from tracker.log import setup_logging
from tracker.metrics_dashboard import load_dashboard
from tracker.mutations import (
    ProcessingUpdate,
    ReportSubmission,
    RowEdit,
    fetch_pending_list,
    submit_processing_update,
    submit_report,
    submit_row_edit,
)
from tracker.normalize import normalize_table
from tracker.records import DefectRecord, RecordLocator
from tracker.table_view import compute_table_view, filter_records


setup_logging()
app = FastAPI(title="Defect Tracker API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, status_code: int, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__, **extra})


def _unknown_category(category: str) -> Optional[JSONResponse]:
    if get_settings().category(category) is None:
        return JSONResponse(status_code=404, content={"error": f"unknown category: {category}", "type": "NotFound"})
    return None


def _load_category(category: str) -> Tuple[List[str], List[DefectRecord], Optional[str]]:
    """Headers and records of one sheet; read failures degrade to an empty table."""
    try:
        table = fetch_table(category)
    except FetchError as exc:
        logger.exception("table fetch failed for %s", category)
        return [], [], str(exc)
    return table.headers, normalize_table(table), None


def proxy_image_bytes(url: str) -> Tuple[bytes, str]:
    response = fetch_image_direct(url, timeout=get_settings().request_timeout)
    media_type = response.headers.get("content-type", "image/png").split(";")[0].strip() or "image/png"
    return response.content, media_type


@app.get("/meta/categories")
def meta_categories():
    settings = get_settings()
    return _json(
        {
            "categories": [
                {"name": c.name, "short_name": c.short_name, "form_value": c.form_value, "form_label": c.form_label}
                for c in settings.categories
            ],
            "areas": [{"value": k, "label": v} for k, v in settings.areas.items()],
        }
    )


@app.get("/dashboard")
def dashboard():
    try:
        return _json(load_dashboard())
    except Exception as exc:
        logger.exception("dashboard failed")
        return _error(exc, 500)


@app.post("/table/{category}")
def table(category: str, request: TableRequestModel):
    missing = _unknown_category(category)
    if missing is not None:
        return missing
    try:
        headers, records, error = _load_category(category)
        filters = normalize_filters(request.filters.model_dump())
        jump = RecordLocator(category, request.jump_row) if request.jump_row is not None else None
        payload = compute_table_view(headers, records, filters, category=category, jump=jump)
        payload["error"] = error
        return _json(payload)
    except Exception as exc:
        logger.exception("table failed")
        return _error(exc, 500)


@app.post("/export/{category}")
def export_category(category: str, filters: ViewFiltersModel):
    missing = _unknown_category(category)
    if missing is not None:
        return missing
    headers, records, error = _load_category(category)
    if error is not None:
        return JSONResponse(status_code=502, content={"error": error, "type": "FetchError"})
    visible = filter_records(records, normalize_filters(filters.model_dump()))
    try:
        content = build_workbook(headers, visible, category, fetch_image=lambda url: proxy_image_bytes(url)[0])
    except ExportError as exc:
        return _error(exc, 500)
    filename = export_filename(category, date.today())
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.get("/api/proxy-image")
def proxy_image(url: str = Query(...)):
    if not is_web_link(url):
        return JSONResponse(status_code=400, content={"error": "url must be an http(s) link", "type": "BadRequest"})
    try:
        content, media_type = proxy_image_bytes(url)
    except requests.RequestException as exc:
        logger.exception("proxy fetch failed for %s", url)
        return _error(exc, 502)
    return Response(content=content, media_type=media_type)


@app.post("/reports")
def create_report(body: ReportModel):
    try:
        report = ReportSubmission(
            reporter_name=body.reporterName,
            category=body.category,
            area=body.area,
            equipment_name=body.equipmentName,
            location=body.location,
            description=body.description,
            files=tuple(f.to_upload() for f in body.files),
        )
        submit_report(report)
    except ValidationError as exc:
        return _error(exc, 422, field=exc.field)
    except ValueError as exc:
        return _error(exc, 422, field="files")
    except SubmitError as exc:
        logger.exception("report submit failed")
        return _error(exc, 502)
    return _json({"status": "dispatched"}, status_code=202)


@app.post("/processing")
def processing_update(body: ProcessingModel):
    try:
        update = ProcessingUpdate(
            sheet=body.sheet,
            row=body.row,
            status=body.tinhTrang,
            note=body.ghiChu,
            operator=body.NVVH,
            files=tuple(f.to_upload() for f in body.files),
        )
        submit_processing_update(update)
    except ValidationError as exc:
        return _error(exc, 422, field=exc.field)
    except ValueError as exc:
        return _error(exc, 422, field="files")
    except SubmitError as exc:
        logger.exception("processing submit failed")
        return _error(exc, 502)
    return _json({"status": "dispatched"}, status_code=202)


@app.get("/pending/{category}")
def pending(category: str):
    missing = _unknown_category(category)
    if missing is not None:
        return missing
    items = fetch_pending_list(category)
    return _json(
        {"items": [PendingItemModel(row=i.row, colE=i.col_e, colF=i.col_f, colG=i.col_g).model_dump() for i in items]}
    )


@app.post("/rows/{category}/{row}")
def edit_row(category: str, row: int, body: RowEditModel):
    try:
        edit = RowEdit(locator=RecordLocator(category, row), row_data=tuple(body.rowData), original=tuple(body.original))
        submit_row_edit(edit)
    except ValidationError as exc:
        return _error(exc, 422, field=exc.field)
    except SubmitError as exc:
        logger.exception("row edit failed")
        return _error(exc, 502)
    return _json({"status": "dispatched", "key": edit.locator.key}, status_code=202)
