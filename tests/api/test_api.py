import base64
import io
from urllib.parse import quote

import pytest
import requests
from fastapi.testclient import TestClient
from openpyxl import load_workbook

import api.main as main
from helpers import HEADERS, FakeResponse, make_row, make_table
from tracker.errors import FetchError, SubmitError
from tracker.mutations import PendingItem

CATEGORY = "TPM, Kaizen"


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def sheet(monkeypatch):
    rows = [
        make_row(ident="1", title="Hỏng bơm", result="xong"),
        make_row(ident="2", title="Rò rỉ dầu"),
        make_row(ident="3", title="Bơm rung", date_display="02/03/2024 10:00:00"),
    ]
    monkeypatch.setattr(main, "fetch_table", lambda category: make_table(category, rows))


def test_meta_lists_categories_and_areas(client):
    body = client.get("/meta/categories").json()
    assert [c["short_name"] for c in body["categories"]] == ["QLHC", "TBCT", "ATVSLĐ", "TPM"]
    assert {"value": "opy-500", "label": "OPY 500kV"} in body["areas"]


def test_dashboard_returns_payload(client, monkeypatch):
    monkeypatch.setattr(main, "load_dashboard", lambda: {"totals": {"total": 0, "processed": 0, "pending": 0}})
    res = client.get("/dashboard")
    assert res.status_code == 200
    assert res.json()["totals"]["total"] == 0


def test_table_filters_and_highlights(client, sheet):
    res = client.post(
        f"/table/{quote(CATEGORY)}",
        json={"filters": {"search": "bơm", "status": "pending"}, "jump_row": 4},
    )
    assert res.status_code == 200
    body = res.json()
    assert [r["row"] for r in body["rows"]] == [4]
    assert body["highlight"] == 4
    assert body["counts"] == {"total": 3, "shown": 1}
    assert body["error"] is None


def test_table_read_failure_degrades_to_empty(client, monkeypatch):
    def boom(category):
        raise FetchError("response envelope not found", category=category)

    monkeypatch.setattr(main, "fetch_table", boom)
    body = client.post(f"/table/{quote(CATEGORY)}", json={}).json()
    assert body["rows"] == []
    assert body["error"] == "response envelope not found"


def test_unknown_category_is_404(client):
    assert client.post("/table/Khác", json={}).status_code == 404


def test_export_returns_xlsx(client, sheet):
    res = client.post(f"/export/{quote(CATEGORY)}", json={"status": "pending"})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/vnd.openxmlformats")
    assert "filename*=UTF-8''TPM%2C%20Kaizen_" in res.headers["content-disposition"]
    ws = load_workbook(io.BytesIO(res.content)).active
    assert [c.value for c in ws[1]] == HEADERS[:14]
    assert ws.max_row == 3


def test_proxy_image_passes_bytes_through(client, monkeypatch, png_bytes):
    seen = []

    def fake_fetch(url, **kwargs):
        seen.append(url)
        return FakeResponse(content=png_bytes, headers={"content-type": "image/png; charset=binary"})

    monkeypatch.setattr(main, "fetch_image_direct", fake_fetch)
    res = client.get("/api/proxy-image", params={"url": "https://drive.google.com/thumbnail?id=a&sz=w400"})
    assert res.status_code == 200
    assert res.headers["content-type"] == "image/png"
    assert res.content == png_bytes
    assert seen == ["https://drive.google.com/thumbnail?id=a&sz=w400"]


def test_proxy_image_rejects_non_http(client):
    assert client.get("/api/proxy-image", params={"url": "file:///etc/passwd"}).status_code == 400


def test_proxy_image_upstream_failure(client, monkeypatch):
    def fail(url, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(main, "fetch_image_direct", fail)
    assert client.get("/api/proxy-image", params={"url": "https://a.example/x.png"}).status_code == 502


REPORT = {
    "reporterName": "Nguyen Van A",
    "category": "safety",
    "area": "opy-500",
    "equipmentName": "Máy cắt",
    "location": "Trạm 500kV",
    "description": "Phát nhiệt",
}


def test_report_dispatch(client, monkeypatch):
    sent = []
    monkeypatch.setattr(main, "submit_report", lambda report: sent.append(report))
    files = [{"name": "a.png", "type": "image/png", "data": "data:image/png;base64," + base64.b64encode(b"img").decode()}]
    res = client.post("/reports", json={**REPORT, "files": files})
    assert res.status_code == 202
    assert sent[0].files[0].data == b"img"
    assert sent[0].equipment_name == "Máy cắt"


def test_report_validation_error(client):
    res = client.post("/reports", json={**REPORT, "area": ""})
    assert res.status_code == 422
    assert res.json()["field"] == "area"


def test_report_bad_file_content(client):
    res = client.post("/reports", json={**REPORT, "files": [{"name": "a.png", "data": "***"}]})
    assert res.status_code == 422
    assert res.json()["field"] == "files"


def test_report_transport_failure(client, monkeypatch):
    def fail(report):
        raise SubmitError("could not reach script")

    monkeypatch.setattr(main, "submit_report", fail)
    assert client.post("/reports", json=REPORT).status_code == 502


def test_processing_requires_row(client):
    res = client.post("/processing", json={"sheet": CATEGORY, "tinhTrang": "xong"})
    assert res.status_code == 422
    assert res.json()["field"] == "row"


def test_processing_dispatch(client, monkeypatch):
    sent = []
    monkeypatch.setattr(main, "submit_processing_update", lambda update: sent.append(update))
    res = client.post("/processing", json={"sheet": CATEGORY, "row": 5, "tinhTrang": "xong", "NVVH": "C"})
    assert res.status_code == 202
    assert (sent[0].sheet, sent[0].row, sent[0].operator) == (CATEGORY, 5, "C")


def test_pending_list(client, monkeypatch):
    monkeypatch.setattr(main, "fetch_pending_list", lambda category: [PendingItem(row=3, col_e="E")])
    body = client.get(f"/pending/{quote(CATEGORY)}").json()
    assert body == {"items": [{"row": 3, "colE": "E", "colF": "", "colG": ""}]}


def test_row_edit_dispatch(client, monkeypatch):
    sent = []
    monkeypatch.setattr(main, "submit_row_edit", lambda edit: sent.append(edit))
    res = client.post(f"/rows/{quote(CATEGORY)}/6", json={"rowData": ["a", "b", "c"], "original": ["1", "2", "3"]})
    assert res.status_code == 202
    assert res.json()["key"] == "TPM, Kaizen-6"
    assert sent[0].merged_row() == ["1", "2", "c"]


def test_row_edit_header_row_rejected(client):
    res = client.post(f"/rows/{quote(CATEGORY)}/1", json={"rowData": ["a"]})
    assert res.status_code == 422
