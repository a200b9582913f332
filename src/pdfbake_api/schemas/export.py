from __future__ import annotations

from typing import Annotated

from pydantic import AliasChoices, Field

from pdfbake_api.schemas.common import BakeModel
from pdfbake_api.schemas.overlay import Alignment, ShapeKind


HexColor = Annotated[str, Field(pattern=r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")]


class ScreenPoint(BakeModel):
    x: float
    y: float


class TextItem(BakeModel):
    """Text placed by the user; coordinates are already in document space."""

    page_index: int = Field(ge=0)
    x: float
    y: float
    text: str
    font_family: str = "Helvetica"
    font_size: float = Field(default=12.0, gt=0)
    color: HexColor = "#000000"
    bold: bool = Field(default=False, validation_alias=AliasChoices("bold", "isBold"))
    italic: bool = Field(default=False, validation_alias=AliasChoices("italic", "isItalic"))
    underline: bool = Field(default=False, validation_alias=AliasChoices("underline", "isUnderline"))
    strikethrough: bool = Field(default=False, validation_alias=AliasChoices("strikethrough", "isStrikethrough"))
    alignment: Alignment = "left"
    background_color: HexColor | None = Field(
        default=None,
        validation_alias=AliasChoices("background_color", "backgroundColor", "bgColor"),
    )
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)


class ImageItem(BakeModel):
    """Image placed by the user; coordinates are already in document space."""

    page_index: int = Field(ge=0)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    data_url: str
    rotation: float = 0.0
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)


class Highlight(BakeModel):
    """Highlight box in zoomed screen pixels (top-left origin)."""

    page_index: int = Field(ge=0)
    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    color: HexColor = "#ffff00"
    opacity: float = Field(default=0.4, ge=0.0, le=1.0)


class Stroke(BakeModel):
    """Freehand stroke in zoomed screen pixels."""

    page_index: int = Field(ge=0)
    points: list[ScreenPoint]
    color: HexColor = "#000000"
    line_width: float = Field(default=2.0, gt=0)


class ShapeItem(BakeModel):
    """Parametric shape bounding box in zoomed screen pixels."""

    page_index: int = Field(ge=0)
    shape_kind: ShapeKind
    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    color: HexColor = "#000000"
    line_width: float = Field(default=2.0, gt=0)


class ExportRequest(BakeModel):
    zoom: float = Field(default=1.0, gt=0)
    filename: str = "edited-document.pdf"
    text_items: list[TextItem] = Field(default_factory=list)
    image_items: list[ImageItem] = Field(default_factory=list)
    highlights: list[Highlight] = Field(default_factory=list)
    strokes: list[Stroke] = Field(default_factory=list)
    shapes: list[ShapeItem] = Field(default_factory=list)
