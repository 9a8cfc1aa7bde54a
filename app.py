import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from tracker.config import get_settings
from tracker.errors import ExportError, SubmitError, ValidationError
from tracker.export import ProxyImageFetcher, build_workbook, export_filename, XLSX_MEDIA_TYPE
from tracker.filters import ALL
from tracker.images import step_index
from tracker.log import setup_logging
from tracker.metrics_dashboard import load_dashboard
from tracker.mutations import (
    ProcessingUpdate,
    ReportSubmission,
    RowEdit,
    UploadedFile,
    PendingItem,
    fetch_pending_list,
    submit_processing_update,
    submit_report,
    submit_row_edit,
)
from tracker.records import RecordLocator
from tracker.table_view import TableViewSession

setup_logging()
settings = get_settings()

PAGES = ["Tổng quan", "Báo cáo", "Tổng hợp", "Xử lý tồn tại"]
STATUS_LABELS = {"all": "Tất cả trạng thái", "processed": "Đã xử lý", "pending": "Chưa xử lý"}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, breadcrumb: str):
    inject_base_styles()
    st.markdown(
        f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
        unsafe_allow_html=True,
    )


def format_filter_summary(search: str, month: str, status: str) -> str:
    chips = [
        f"Tìm: {search}" if search else "Tìm: —",
        "Tháng: tất cả" if month == ALL else f"Tháng: {month}",
        STATUS_LABELS.get(status, status),
    ]
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def _uploads(files) -> tuple:
    return tuple(UploadedFile(name=f.name, type=f.type or "", data=f.getvalue()) for f in (files or []))


def _short_name(category: str) -> str:
    spec = settings.category(category)
    return spec.short_name if spec else category


def _step_image(state_key: str, delta: int, count: int):
    st.session_state[state_key] = step_index(st.session_state.get(state_key, 0), delta, count)


def _go_to_row(category: str, row: int):
    st.session_state["jump"] = RecordLocator(category, row)
    st.session_state["nav"] = "Tổng hợp"


# ---------- data ----------
@st.cache_data(ttl=60, show_spinner=False)
def cached_dashboard() -> Dict[str, Any]:
    return load_dashboard()


@st.cache_data(ttl=30, show_spinner=False)
def cached_pending_list(sheet: str) -> List[PendingItem]:
    return fetch_pending_list(sheet)


def table_session() -> TableViewSession:
    if "table_session" not in st.session_state:
        session = TableViewSession(settings=settings)
        session.load()
        st.session_state["table_session"] = session
    return st.session_state["table_session"]


# ----- Page renderers -----

def render_dashboard_page():
    render_page_header("Kiểm tra và cập nhật các hư hỏng, tồn tại", "Trang chủ / Tổng quan")
    if st.button("Làm mới"):
        cached_dashboard.clear()
    with st.spinner("Đang tải dữ liệu..."):
        data = cached_dashboard()

    if data.get("failed_categories"):
        st.caption("Không tải được: " + ", ".join(data["failed_categories"]))

    totals = data["totals"]
    cols = st.columns(3)
    cols[0].metric("Tổng tồn tại", totals["total"])
    cols[1].metric("Đang xử lý", totals["pending"])
    cols[2].metric("Hoàn thành", totals["processed"])

    left, right = st.columns(2)
    with left:
        with card("Biểu đồ hoạt động"):
            st.vega_lite_chart(data["charts"]["activity"], use_container_width=True)
    with right:
        with card("Thống kê hoạt động"):
            contributors = data["contributors"]
            if not contributors:
                st.info("Chưa có dữ liệu nhân sự")
            for rank, person in enumerate(contributors, start=1):
                months = " · ".join(f"T{m}: {n}" for m, n in person["monthly"].items())
                st.markdown(f"**{rank}. {person['name']}** — Tổng: {person['total']}")
                if months:
                    st.caption(months)

    with card("Hoạt động mới nhất"):
        recent = data["recent"]
        if not recent:
            st.info("Hiện chưa có hoạt động")
        for act in recent:
            c1, c2 = st.columns([6, 1])
            icon = "✅" if act["is_done"] else "⚠️"
            c1.markdown(
                f"{icon} **{act['title']}**  \n📍 {act['location']} · {_short_name(act['category'])} · {act['time'].split(' ')[0]}"
            )
            c2.button("Xem", key=f"jump-{act['key']}", on_click=_go_to_row, args=(act["category"], act["row"]))


def render_report_page():
    render_page_header("Cập nhật tồn tại & hư hỏng", "Trang chủ / Báo cáo")
    category_labels = {c.form_value: c.form_label for c in settings.categories}
    with st.form("report_form"):
        reporter = st.text_input("Họ và tên người phát hiện *")
        category = st.radio("Phân loại *", options=list(category_labels), format_func=category_labels.get, index=None)
        area = st.radio("Khu vực *", options=list(settings.areas), format_func=settings.areas.get, index=None)
        equipment = st.text_input("Tên thiết bị *")
        location = st.text_input("Địa điểm *")
        description = st.text_area("Mô tả *", height=90)
        files = st.file_uploader("Hình ảnh", accept_multiple_files=True, type=["png", "jpg", "jpeg", "gif", "webp"])
        submitted = st.form_submit_button("Gửi báo cáo")

    if not submitted:
        return
    report = ReportSubmission(
        reporter_name=reporter,
        category=category or "",
        area=area or "",
        equipment_name=equipment,
        location=location,
        description=description,
        files=_uploads(files),
    )
    try:
        with st.spinner("Đang gửi..."):
            submit_report(report)
    except ValidationError as exc:
        st.warning(str(exc))
    except SubmitError:
        st.error("Có lỗi xảy ra khi kết nối với máy chủ.")
    else:
        st.success("Gửi báo cáo thành công!")


def render_edit_form(session: TableViewSession, row: int):
    record = next((r for r in session.records if r.row == row), None)
    if record is None:
        return
    with st.form(f"edit-{session.category}-{row}"):
        st.markdown(f"**Chỉnh sửa hàng #{row}**")
        edited: List[str] = []
        for idx, header in enumerate(session.headers):
            value = record.values[idx] if idx < len(record.values) else ""
            edited.append(
                st.text_input(header or f"Cột {idx + 1}", value=value, disabled=idx in settings.columns.read_only, key=f"edit-{row}-{idx}")
            )
        saved = st.form_submit_button("Lưu thay đổi")
    if not saved:
        return
    try:
        submit_row_edit(RowEdit(locator=record.locator, row_data=tuple(edited), original=record.values))
    except (ValidationError, SubmitError):
        st.error("Có lỗi xảy ra khi lưu. Vui lòng kiểm tra lại cấu hình Apps Script.")
        return
    st.success("Yêu cầu cập nhật đã được gửi! Vui lòng đợi vài giây để hệ thống xử lý.")
    time.sleep(1)
    session.load()


def render_summary_page():
    render_page_header("Tổng hợp tồn tại", "Trang chủ / Tổng hợp")
    session = table_session()

    jump: Optional[RecordLocator] = st.session_state.pop("jump", None)
    if jump is not None:
        pending = session.apply_jump(jump)
        if pending is not None:
            pending.result()
        session.locate()

    tabs = st.columns(len(settings.categories) + 1)
    for idx, spec in enumerate(settings.categories):
        if tabs[idx].button(spec.name, type="primary" if spec.name == session.category else "secondary"):
            session.clear_jump()
            session.select_category(spec.name).result()
    if tabs[-1].button("Làm mới"):
        session.load()

    view = session.view()
    c1, c2, c3 = st.columns([4, 2, 2])
    search = c1.text_input("Tìm kiếm nhanh...", value=session.filters.search)
    month_options = [ALL] + view["months"]
    month = c2.selectbox(
        "Tháng",
        month_options,
        index=month_options.index(session.filters.month) if session.filters.month in month_options else 0,
        format_func=lambda m: "Tất cả các tháng" if m == ALL else f"Tháng {m}",
    )
    status = c3.selectbox("Trạng thái", list(STATUS_LABELS), index=list(STATUS_LABELS).index(session.filters.status), format_func=STATUS_LABELS.get)
    session.set_filters(search=search.strip(), month=month, status=status)
    view = session.view()

    st.markdown(f"<div class='chip-row'>{format_filter_summary(search, month, status)}</div>", unsafe_allow_html=True)
    if view["error"]:
        st.caption("Không tải được dữ liệu.")
    st.caption(f"{view['counts']['shown']} / {view['counts']['total']} dòng")

    headers = view["headers"]
    image_cols = set(view["image_columns"])
    table_rows = []
    for row in view["rows"]:
        out = {"Hàng": row["row"]}
        for idx, cell in enumerate(row["cells"]):
            if cell["kind"] == "images":
                out[headers[idx]] = cell["images"][0]["display"]
            else:
                out[headers[idx]] = cell["text"]
        table_rows.append(out)
    frame = pd.DataFrame(table_rows, columns=["Hàng"] + headers)
    column_config = {headers[i]: st.column_config.ImageColumn(headers[i]) for i in image_cols}
    st.dataframe(frame, hide_index=True, use_container_width=True, column_config=column_config)

    if view["highlight"] is not None:
        st.info(f"Hàng #{view['highlight']} được chọn từ trang tổng quan.")

    rows_by_number = {r["row"]: r for r in view["rows"]}
    selected = st.selectbox("Chọn hàng", [None] + list(rows_by_number), index=0 if view["highlight"] is None else list(rows_by_number).index(view["highlight"]) + 1)
    if selected is not None:
        row = rows_by_number[selected]
        for idx, cell in enumerate(row["cells"]):
            if cell["kind"] != "images":
                continue
            with st.expander(f"{headers[idx]} ({len(cell['images'])})"):
                state_key = f"lb-{selected}-{idx}"
                count = len(cell["images"])
                prev_col, pos_col, next_col = st.columns([1, 4, 1])
                prev_col.button("‹", key=f"{state_key}-prev", on_click=_step_image, args=(state_key, -1, count))
                next_col.button("›", key=f"{state_key}-next", on_click=_step_image, args=(state_key, 1, count))
                position = st.session_state.get(state_key, 0) % count
                pos_col.caption(f"{position + 1} / {count}")
                image = cell["images"][position]
                st.image(image["full"], use_container_width=True)
                st.markdown(f"[Xem link gốc]({image['original']})")
        render_edit_form(session, selected)

    if st.button("Chuẩn bị file Excel", disabled=not view["rows"]):
        try:
            with st.spinner("Đang xuất Excel..."):
                content = build_workbook(
                    session.headers,
                    session.visible_records(),
                    session.category,
                    fetch_image=ProxyImageFetcher(settings=settings),
                    settings=settings,
                )
        except ExportError:
            st.error("Có lỗi khi xuất Excel. Vui lòng thử lại.")
        else:
            st.download_button("Xuất Excel", data=content, file_name=export_filename(session.category), mime=XLSX_MEDIA_TYPE)


def render_processing_page():
    render_page_header("Xử lý tồn tại", "Trang chủ / Xử lý tồn tại")
    sheet = st.selectbox("Phân loại", [""] + settings.category_names, format_func=lambda s: s or "— Chọn —")
    items = cached_pending_list(sheet) if sheet else []
    with st.form("processing_form"):
        row = st.selectbox(
            "Tồn tại cần xử lý",
            [None] + [i.row for i in items],
            format_func=lambda r: "— Chọn —" if r is None else next(
                f"#{i.row} · {i.col_e} · {i.col_f} · {i.col_g}" for i in items if i.row == r
            ),
        )
        status = st.text_input("Tình trạng")
        note = st.text_area("Ghi chú", height=80)
        operator = st.text_input("NVVH")
        files = st.file_uploader("Hình ảnh", accept_multiple_files=True, type=["png", "jpg", "jpeg", "gif", "webp"])
        submitted = st.form_submit_button("Cập nhật")

    if not submitted:
        return
    update = ProcessingUpdate(sheet=sheet, row=row, status=status, note=note, operator=operator, files=_uploads(files))
    try:
        submit_processing_update(update)
    except ValidationError:
        st.warning("Vui lòng chọn đầy đủ thông tin!")
    except SubmitError:
        st.error("Có lỗi xảy ra khi kết nối với máy chủ.")
    else:
        cached_pending_list.clear()
        st.success("Cập nhật thành công!")


# ---------- UI setup ----------
st.set_page_config(page_title="Defect Tracker", layout="wide")
inject_base_styles()

with st.sidebar:
    st.markdown("### Điều hướng")
    current_page = st.radio("Điều hướng", PAGES, key="nav", label_visibility="collapsed")

if current_page == "Tổng quan":
    render_dashboard_page()
elif current_page == "Báo cáo":
    render_report_page()
elif current_page == "Tổng hợp":
    render_summary_page()
else:
    render_processing_page()
