from __future__ import annotations

import base64
import binascii
from typing import Annotated, Literal, Union

from pydantic import AliasChoices, Field, field_serializer, field_validator, model_validator

from pdfbake_api.core.transform import decode_image_data_url
from pdfbake_api.schemas.common import BLACK, BakeModel, Color, Rect


Alignment = Literal["left", "center", "right", "justify"]
ImageType = Literal["png", "jpg"]
ShapeKind = Literal["rect", "circle", "line", "arrow", "triangle", "star"]


def _coerce_image_bytes(value: object) -> object:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        if value.startswith("data:"):
            return decode_image_data_url(value).data
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("image bytes must be raw bytes, base64 or a data URL") from exc
    return value


class TextFormat(BakeModel):
    bold: bool = Field(default=False, validation_alias=AliasChoices("bold", "isBold"))
    italic: bool = Field(default=False, validation_alias=AliasChoices("italic", "isItalic"))
    underline: bool = Field(default=False, validation_alias=AliasChoices("underline", "isUnderline"))
    strikethrough: bool = Field(default=False, validation_alias=AliasChoices("strikethrough", "isStrikethrough"))
    alignment: Alignment = "left"
    background_color: Color | None = Field(
        default=None,
        validation_alias=AliasChoices("background_color", "backgroundColor", "bgColor"),
    )


class TextOverlay(BakeModel):
    type: Literal["TEXT"] = "TEXT"
    page_index: int = Field(ge=0)
    x: float
    y: float
    text: str
    font_family: str = "Helvetica"
    font_size: float = Field(default=12.0, gt=0)
    color: Color = BLACK
    bold: bool = Field(default=False, validation_alias=AliasChoices("bold", "isBold"))
    italic: bool = Field(default=False, validation_alias=AliasChoices("italic", "isItalic"))
    underline: bool = Field(default=False, validation_alias=AliasChoices("underline", "isUnderline"))
    strikethrough: bool = Field(default=False, validation_alias=AliasChoices("strikethrough", "isStrikethrough"))
    alignment: Alignment = "left"
    background_color: Color | None = Field(
        default=None,
        validation_alias=AliasChoices("background_color", "backgroundColor", "bgColor"),
    )
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)

    @property
    def text_format(self) -> TextFormat:
        return TextFormat(
            bold=self.bold,
            italic=self.italic,
            underline=self.underline,
            strikethrough=self.strikethrough,
            alignment=self.alignment,
            background_color=self.background_color,
        )


class ImageOverlay(BakeModel):
    type: Literal["IMAGE"] = "IMAGE"
    page_index: int = Field(ge=0)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    image_bytes: bytes
    image_type: ImageType = "png"
    rotation: float = 0.0
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("image_bytes", mode="before")
    @classmethod
    def _decode_image_bytes(cls, value: object) -> object:
        return _coerce_image_bytes(value)

    @field_serializer("image_bytes", when_used="json")
    def _encode_image_bytes(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


class RectangleOverlay(BakeModel):
    type: Literal["RECTANGLE"] = "RECTANGLE"
    page_index: int = Field(ge=0)
    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    color: Color
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def rect(self) -> Rect:
        return Rect(x=self.x, y=self.y, width=self.width, height=self.height)


class DrawingOverlay(BakeModel):
    type: Literal["DRAWING"] = "DRAWING"
    page_index: int = Field(ge=0)
    svg_path: str
    color: Color = BLACK
    line_width: float = Field(default=2.0, gt=0)


class ShapeOverlay(BakeModel):
    type: Literal["SHAPE"] = "SHAPE"
    page_index: int = Field(ge=0)
    shape_kind: ShapeKind
    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    color: Color = BLACK
    line_width: float = Field(default=2.0, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _accept_shape_type(cls, data: object) -> object:
        # Older clients send the kind as "shapeType".
        if isinstance(data, dict) and "shapeType" in data and "shapeKind" not in data and "shape_kind" not in data:
            data = dict(data)
            data["shapeKind"] = data.pop("shapeType")
        return data


Overlay = Annotated[
    Union[TextOverlay, ImageOverlay, RectangleOverlay, DrawingOverlay, ShapeOverlay],
    Field(discriminator="type"),
]
