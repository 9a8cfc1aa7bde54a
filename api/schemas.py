from __future__ import annotations

import base64
import binascii
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tracker.mutations import UploadedFile


class ViewFiltersModel(BaseModel):
    search: str = ""
    month: str = "all"
    status: Literal["all", "processed", "pending"] = "all"


class TableRequestModel(BaseModel):
    filters: ViewFiltersModel = Field(default_factory=ViewFiltersModel)
    jump_row: Optional[int] = None


class FileModel(BaseModel):
    name: str
    type: str = "application/octet-stream"
    data: str = Field(description="base64 content; a data: URL prefix is accepted")

    @field_validator("data")
    @classmethod
    def _strip_data_url(cls, value: str) -> str:
        if value.startswith("data:") and "," in value:
            return value.split(",", 1)[1]
        return value

    def to_upload(self) -> UploadedFile:
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"{self.name}: invalid base64 content") from exc
        return UploadedFile(name=self.name, type=self.type, data=raw)


class ReportModel(BaseModel):
    reporterName: str = ""
    category: str = ""
    area: str = ""
    equipmentName: str = ""
    location: str = ""
    description: str = ""
    files: List[FileModel] = Field(default_factory=list)


class ProcessingModel(BaseModel):
    sheet: str = ""
    row: Optional[int] = None
    tinhTrang: str = ""
    ghiChu: str = ""
    NVVH: str = ""
    files: List[FileModel] = Field(default_factory=list)


class RowEditModel(BaseModel):
    rowData: List[str] = Field(default_factory=list)
    original: List[str] = Field(default_factory=list)


class PendingItemModel(BaseModel):
    row: int
    colE: str = ""
    colF: str = ""
    colG: str = ""
