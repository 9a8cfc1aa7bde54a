from __future__ import annotations

import json
from typing import Any, List, Optional

import requests

from tracker.records import RawTable

HEADERS = [
    "ID",
    "Thời gian",
    "Người phát hiện",
    "Khu vực",
    "Thiết bị",
    "Tên tồn tại",
    "Vị trí",
    "Mô tả",
    "Hình ảnh",
    "Ghi chú",
    "Hạn xử lý",
    "Kết quả",
    "NVVH",
    "Hình ảnh sau xử lý",
    "Cột phụ",
]


def make_cell(value: Any, formatted: Optional[str] = None) -> Optional[dict]:
    if value is None and formatted is None:
        return None
    cell = {"v": value}
    if formatted is not None:
        cell["f"] = formatted
    return cell


def make_row(
    *,
    ident: str = "1",
    date: Optional[str] = "Date(2024,0,15,8,30,0)",
    date_display: Optional[str] = "15/01/2024 08:30:00",
    reporter: str = "Nguyen Van A",
    title: str = "Rò rỉ dầu",
    location: str = "Tổ máy 1",
    image: str = "",
    result: str = "",
    operator: str = "",
) -> List[Optional[dict]]:
    cells: List[Optional[dict]] = [None] * len(HEADERS)
    cells[0] = make_cell(ident)
    cells[1] = make_cell(date, date_display)
    cells[2] = make_cell(reporter)
    cells[5] = make_cell(title or None)
    cells[6] = make_cell(location or None)
    cells[8] = make_cell(image or None)
    cells[11] = make_cell(result or None)
    cells[12] = make_cell(operator or None)
    return cells


def make_payload(rows: List[List[Optional[dict]]], headers: Optional[List[str]] = None) -> dict:
    headers = HEADERS if headers is None else headers
    return {
        "version": "0.6",
        "status": "ok",
        "table": {
            "cols": [{"id": chr(65 + i), "label": h, "type": "string"} for i, h in enumerate(headers)],
            "rows": [{"c": r} for r in rows],
        },
    }


def make_response_text(payload: Any) -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return "/*O_o*/\ngoogle.visualization.Query.setResponse(" + body + ");"


def make_table(category: str, rows: List[List[Optional[dict]]], headers: Optional[List[str]] = None) -> RawTable:
    return RawTable(category=category, headers=list(HEADERS if headers is None else headers), rows=rows)


class FakeResponse:
    def __init__(self, *, text: str = "", status_code: int = 200, content: bytes = b"", json_data: Any = None, headers=None):
        self.text = text
        self.status_code = status_code
        self.content = content
        self._json = json_data
        self.headers = headers or {}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


class FakeSession:
    """Records calls and answers from a callable or a fixed response."""

    def __init__(self, responder):
        self.responder = responder
        self.calls: List[dict] = []

    def _answer(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        result = self.responder(method, url, kwargs) if callable(self.responder) else self.responder
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._answer("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, **kwargs)
