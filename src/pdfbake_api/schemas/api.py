from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pdfbake_api.core.fonts.resolve import FontReason
from pdfbake_api.schemas.common import BLACK, BakeModel, Color, Rect
from pdfbake_api.schemas.history import HistoryState
from pdfbake_api.schemas.overlay import Overlay, TextFormat


class PageSize(BaseModel):
    width: float
    height: float


class SessionMeta(BaseModel):
    session_id: str
    filename: str
    size_bytes: int = Field(..., ge=0)
    page_count: int = Field(..., ge=0)
    page_sizes: list[PageSize] = Field(default_factory=list)
    custom_font: str | None = None
    created_at: datetime
    updated_at: datetime


class SessionResponse(SessionMeta):
    history: HistoryState


class ReorderRequest(BakeModel):
    order: list[int] = Field(min_length=1)


class InsertPageRequest(BakeModel):
    after_index: int = -1


class RotatePageRequest(BakeModel):
    delta_degrees: int = 90


class ReplaceTextRequest(BakeModel):
    page_index: int = Field(ge=0)
    rect: Rect
    new_text: str
    font_name: str | None = None
    font_size: float = Field(default=12.0, gt=0)
    color: Color = BLACK
    text_format: TextFormat | None = None


class AddTextRequest(BakeModel):
    page_index: int = Field(ge=0)
    x: float
    y: float
    text: str
    font_family: str | None = None
    font_size: float = Field(default=12.0, gt=0)
    color: Color = BLACK
    text_format: TextFormat | None = None
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)


class AreaRequest(BakeModel):
    page_index: int = Field(ge=0)
    rect: Rect


class ReplaceImageRequest(AreaRequest):
    image_data_url: str


class AddImageRequest(BakeModel):
    page_index: int = Field(ge=0)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    image_data_url: str


class BakeRequest(BakeModel):
    overlays: list[Overlay] = Field(default_factory=list)
    filename: str = "edited-document.pdf"
    strict: bool | None = None


class HistoryActionResponse(BaseModel):
    applied: str | None
    history: HistoryState


class FontResolveRequest(BakeModel):
    font_name: str | None = None
    bold: bool = False
    italic: bool = False


class FontResolveResponse(BaseModel):
    raw: str | None
    key: str
    family: str
    bold: bool
    italic: bool
    reason: FontReason
