from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple


SHEET_ID = "1EVA37o8kSgi3Z86hwUQN5uyBtVwERDo3REO0xMtMqE0"
READ_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:json&sheet={sheet}"
REPORT_WEB_APP_URL = (
    "https://script.google.com/macros/s/"
    "AKfycbytJsnBmwEMosm1dLK8VZTLYTt2CvR0E-ApUHFMDgWV6B0T1GEBnkk400Q4v0XBrRVO/exec"
)
PROCESS_WEB_APP_URL = (
    "https://script.google.com/macros/s/"
    "AKfycbz6EOtoLlEu4qUDZPllqs2eET8VOQ14WwJbM0drY-sVWKWVL1nKJcAFqo7nsnGdZ6jl/exec"
)


@dataclass(frozen=True)
class CategorySpec:
    name: str
    short_name: str
    form_value: str
    form_label: str = ""


@dataclass(frozen=True)
class ColumnLayout:
    """Source column indices read by the normalizer (0-based)."""

    timestamp: int = 1
    reporter: int = 2
    title: int = 5
    location: int = 6
    result: int = 11
    operator: int = 12
    # id + timestamp are never edited in place
    read_only: Tuple[int, ...] = (0, 1)


DEFAULT_CATEGORIES: Tuple[CategorySpec, ...] = (
    CategorySpec("Quản lý hành chính", "QLHC", "administrative", "Quản lý hành chính"),
    CategorySpec("Thiết bị công trình", "TBCT", "construction-equipment", "Hư hỏng thiết bị công trình"),
    CategorySpec("An toàn vệ sinh lao động", "ATVSLĐ", "safety", "An toàn vệ sinh lao động"),
    CategorySpec("TPM, Kaizen", "TPM", "iso-kaizen", "ISO, KAIZEN 5S, TPM"),
)

DEFAULT_AREAS: Dict[str, str] = {
    "ialy-hien-huu": "Ialy hiện hữu",
    "ialy-mo-rong": "Ialy mở rộng",
    "cua-nhan-nuoc": "Cửa nhận nước",
    "opy-500": "OPY 500kV",
}

IMAGE_COLUMN_KEYWORDS: Tuple[str, ...] = ("hình", "minh chứng", "ảnh")


@dataclass(frozen=True)
class ExportSettings:
    header_fill: str = "FFD3D3D3"
    image_width: int = 100
    image_height: int = 100
    row_height: int = 80
    image_column_width: int = 25
    column_width: int = 20


@dataclass(frozen=True)
class TrackerSettings:
    sheet_id: str = SHEET_ID
    read_url_template: str = READ_URL_TEMPLATE
    report_url: str = REPORT_WEB_APP_URL
    process_url: str = PROCESS_WEB_APP_URL
    categories: Tuple[CategorySpec, ...] = DEFAULT_CATEGORIES
    areas: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_AREAS))
    columns: ColumnLayout = field(default_factory=ColumnLayout)
    image_keywords: Tuple[str, ...] = IMAGE_COLUMN_KEYWORDS
    max_columns: int = 14
    header_offset: int = 2
    recent_limit: int = 5
    default_title: str = "Không rõ"
    default_location: str = "N/A"
    thumbnail_size: str = "w400"
    lightbox_size: str = "w1000"
    image_proxy_path: str = "/api/proxy-image"
    app_base_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    export: ExportSettings = field(default_factory=ExportSettings)

    @property
    def category_names(self) -> List[str]:
        return [c.name for c in self.categories]

    def category(self, name: str) -> Optional[CategorySpec]:
        for spec in self.categories:
            if spec.name == name:
                return spec
        return None

    def form_values(self) -> List[str]:
        return [c.form_value for c in self.categories]


@lru_cache(maxsize=1)
def get_settings() -> TrackerSettings:
    return TrackerSettings()


def resolve_settings(settings: Optional[TrackerSettings]) -> TrackerSettings:
    return settings if settings is not None else get_settings()
