"""Excel export of the filtered summary table, with images embedded in place."""

from __future__ import annotations

import io
import logging
import re
from datetime import date
from typing import Callable, Optional, Sequence
from urllib.parse import quote

import requests
from openpyxl import Workbook
from openpyxl.drawing.image import Image as ExcelImage
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from PIL import Image as PILImage

from tracker.config import TrackerSettings, resolve_settings
from tracker.errors import ExportError
from tracker.images import extract_image_links, is_image_column
from tracker.records import DefectRecord


logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]+')
UNSAFE_SHEET_CHARS = re.compile(r"[\\/:*?\[\]]+")

ImageFetcher = Callable[[str], bytes]


def export_filename(category: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    stem = UNSAFE_FILENAME_CHARS.sub("_", category).strip() or "export"
    return f"{stem}_{today.day}-{today.month}-{today.year}.xlsx"


def fetch_image_direct(url: str, *, session: Optional[requests.Session] = None, timeout: float = 30.0) -> requests.Response:
    http = session or requests
    response = http.get(url, timeout=timeout)
    response.raise_for_status()
    return response


class ProxyImageFetcher:
    """Fetch images through the service's ``/api/proxy-image`` endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        settings: Optional[TrackerSettings] = None,
    ):
        self.settings = resolve_settings(settings)
        self.base_url = (base_url if base_url is not None else self.settings.app_base_url).rstrip("/")
        self.session = session

    def url_for(self, image_url: str) -> str:
        return f"{self.base_url}{self.settings.image_proxy_path}?url={quote(image_url, safe='')}"

    def __call__(self, image_url: str) -> bytes:
        response = fetch_image_direct(self.url_for(image_url), session=self.session, timeout=self.settings.request_timeout)
        return response.content


def _embeddable_png(raw: bytes) -> io.BytesIO:
    """Decode fully and re-encode as PNG so a broken image fails here, not on save."""
    with PILImage.open(io.BytesIO(raw)) as img:
        img.load()
        if img.mode not in ("1", "L", "LA", "P", "RGB", "RGBA"):
            img = img.convert("RGBA")
        out = io.BytesIO()
        img.save(out, format="PNG")
    out.seek(0)
    return out


def _sheet_title(category: str) -> str:
    return (UNSAFE_SHEET_CHARS.sub(" ", category).strip() or "Sheet")[:31]


def build_workbook(
    headers: Sequence[str],
    records: Sequence[DefectRecord],
    category: str,
    *,
    fetch_image: ImageFetcher,
    settings: Optional[TrackerSettings] = None,
) -> bytes:
    settings = resolve_settings(settings)
    cfg = settings.export
    shown = [str(h) for h in list(headers)[: settings.max_columns]]
    image_cols = [i for i, h in enumerate(shown) if is_image_column(h, settings)]

    try:
        wb = Workbook()
        ws = wb.active
        ws.title = _sheet_title(category)

        ws.append(shown)
        header_fill = PatternFill(fill_type="solid", start_color=cfg.header_fill, end_color=cfg.header_fill)
        for cell in ws[1]:
            cell.font = Font(bold=True)
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
        for idx in range(len(shown)):
            width = cfg.image_column_width if idx in image_cols else cfg.column_width
            ws.column_dimensions[get_column_letter(idx + 1)].width = width

        embedded = 0
        for record in records:
            values = list(record.displayed(len(shown)))
            ws.append(values)
            row_num = ws.max_row
            ws.row_dimensions[row_num].height = cfg.row_height
            for cell in ws[row_num]:
                cell.alignment = Alignment(vertical="center", wrap_text=True)

            for col_idx in image_cols:
                if col_idx >= len(values):
                    continue
                links = extract_image_links(values[col_idx], settings)
                if not links:
                    continue
                fetch_url = links[0].display
                try:
                    img = ExcelImage(_embeddable_png(fetch_image(fetch_url)))
                    img.width = cfg.image_width
                    img.height = cfg.image_height
                    ws.add_image(img, f"{get_column_letter(col_idx + 1)}{row_num}")
                except Exception:
                    logger.exception("could not embed image %s (row %s)", fetch_url, record.row)
                    continue
                ws.cell(row=row_num, column=col_idx + 1).value = None
                embedded += 1

        buffer = io.BytesIO()
        wb.save(buffer)
    except Exception as exc:
        logger.exception("excel export failed for %s", category)
        raise ExportError(f"excel export failed: {exc}") from exc

    logger.info("exported %d rows (%d images) for %s", len(records), embedded, category)
    return buffer.getvalue()
