import json

import pytest
import requests

from helpers import FakeResponse, FakeSession
from tracker.errors import SubmitError, ValidationError
from tracker.mutations import (
    PendingItem,
    ProcessingUpdate,
    ReportSubmission,
    RowEdit,
    UploadedFile,
    fetch_pending_list,
    submit_processing_update,
    submit_report,
    submit_row_edit,
)
from tracker.records import RecordLocator

PHOTO = UploadedFile(name="a.png", type="image/png", data=b"\x89PNG")


def _report(**changes):
    fields = dict(
        reporter_name="Nguyen Van A",
        category="safety",
        area="cua-nhan-nuoc",
        equipment_name="Van xả",
        location="Cửa nhận nước",
        description="Rò nước",
        files=(PHOTO,),
    )
    fields.update(changes)
    return ReportSubmission(**fields)


def _sent(session):
    call = session.calls[-1]
    assert call["headers"]["Content-Type"] == "text/plain;charset=utf-8"
    return json.loads(call["data"].decode("utf-8"))


def test_report_payload_shape(settings):
    session = FakeSession(FakeResponse())
    submit_report(_report(), session=session, settings=settings)
    assert session.calls[0]["url"] == settings.report_url
    body = _sent(session)
    assert body["category"] == "safety"
    assert body["equipmentName"] == "Van xả"
    assert body["files"] == [{"dataURL": "data:image/png;base64,iVBORw==", "type": "image/png", "name": "a.png"}]


@pytest.mark.parametrize("missing", ["category", "area"])
def test_report_without_category_or_area_never_sends(settings, missing):
    session = FakeSession(FakeResponse())
    with pytest.raises(ValidationError) as info:
        submit_report(_report(**{missing: ""}), session=session, settings=settings)
    assert info.value.field == missing
    assert str(info.value) == "Vui lòng chọn đầy đủ Phân loại và Khu vực!"
    assert session.calls == []


def test_report_rejects_unknown_category(settings):
    with pytest.raises(ValidationError):
        _report(category="electrical").validate(settings)


def test_report_requires_description(settings):
    with pytest.raises(ValidationError) as info:
        _report(description="  ").validate(settings)
    assert info.value.field == "description"


def test_transport_failure_raises_submit_error(settings):
    session = FakeSession(requests.ConnectionError("offline"))
    with pytest.raises(SubmitError):
        submit_report(_report(), session=session, settings=settings)


def test_opaque_response_counts_as_sent(settings):
    session = FakeSession(FakeResponse(status_code=0))
    payload = submit_report(_report(files=()), session=session, settings=settings)
    assert payload["files"] == []


def test_processing_update_payload(settings):
    session = FakeSession(FakeResponse())
    update = ProcessingUpdate(
        sheet="TPM, Kaizen", row=7, status="Đã xử lý", note="thay mới", operator="Le Van C", files=(PHOTO,)
    )
    submit_processing_update(update, session=session, settings=settings)
    assert session.calls[0]["url"] == settings.process_url
    body = _sent(session)
    assert body["action"] == "uploadFiles"
    assert body["form"] == {
        "sheetId": settings.sheet_id,
        "sheet": "TPM, Kaizen",
        "row": 7,
        "tinhTrang": "Đã xử lý",
        "ghiChu": "thay mới",
        "NVVH": "Le Van C",
        "files": [{"data": "iVBORw==", "type": "image/png", "name": "a.png"}],
    }


@pytest.mark.parametrize("sheet, row", [("", 5), ("TPM, Kaizen", None), ("Không có", 5), ("TPM, Kaizen", 1)])
def test_processing_update_validation(settings, sheet, row):
    session = FakeSession(FakeResponse())
    with pytest.raises(ValidationError):
        submit_processing_update(ProcessingUpdate(sheet=sheet, row=row), session=session, settings=settings)
    assert session.calls == []


def test_row_edit_keeps_read_only_columns(settings):
    session = FakeSession(FakeResponse())
    edit = RowEdit(
        locator=RecordLocator("Quản lý hành chính", 9),
        row_data=("changed-id", "changed-time", "Tran Thi B"),
        original=("42", "01/02/2024", "Nguyen Van A"),
    )
    submit_row_edit(edit, session=session, settings=settings)
    body = _sent(session)
    assert body == {
        "action": "updateRowData",
        "sheetName": "Quản lý hành chính",
        "row": 9,
        "rowData": ["42", "01/02/2024", "Tran Thi B"],
        "sheetId": settings.sheet_id,
    }


def test_row_edit_rejects_header_row(settings):
    with pytest.raises(ValidationError):
        RowEdit(locator=RecordLocator("Quản lý hành chính", 1), row_data=("x",)).validate(settings)


def test_pending_list_parses_items(settings):
    data = [{"row": 4, "colE": "Bơm", "colF": "Rung", "colG": "Tổ 2"}, {"row": "x"}, "junk"]
    session = FakeSession(FakeResponse(json_data=data))
    items = fetch_pending_list("TPM, Kaizen", session=session, settings=settings)
    assert items == [PendingItem(row=4, col_e="Bơm", col_f="Rung", col_g="Tổ 2")]
    body = _sent(session)
    assert body == {"action": "getPendingList", "sheetName": "TPM, Kaizen", "sheetId": settings.sheet_id}


@pytest.mark.parametrize(
    "response",
    [FakeResponse(json_data={"error": "x"}), FakeResponse(), requests.ConnectionError("offline")],
)
def test_pending_list_failures_are_empty(settings, response):
    assert fetch_pending_list("TPM, Kaizen", session=FakeSession(response), settings=settings) == []


def test_pending_list_without_sheet_skips_request(settings):
    session = FakeSession(FakeResponse(json_data=[]))
    assert fetch_pending_list("", session=session, settings=settings) == []
    assert session.calls == []
