from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from pdfbake_api.schemas.common import BLACK, BakeModel, Color, Payload, Rect
from pdfbake_api.schemas.overlay import ImageType, Overlay, RectangleOverlay, TextFormat


class MergeDocumentsCall(BakeModel):
    method: Literal["merge_documents"] = "merge_documents"
    first: Payload
    second: Payload


class ReorderPagesCall(BakeModel):
    method: Literal["reorder_pages"] = "reorder_pages"
    document: Payload
    order: list[int]


class InsertBlankPageCall(BakeModel):
    method: Literal["insert_blank_page"] = "insert_blank_page"
    document: Payload
    after_index: int


class DeletePageCall(BakeModel):
    method: Literal["delete_page"] = "delete_page"
    document: Payload
    page_index: int


class RotatePageCall(BakeModel):
    method: Literal["rotate_page"] = "rotate_page"
    document: Payload
    page_index: int
    delta_degrees: int = 90


class ReplaceTextRegionCall(BakeModel):
    method: Literal["replace_text_region"] = "replace_text_region"
    document: Payload
    page_index: int
    rect: Rect
    new_text: str
    font_name: str | None = None
    font_size: float = Field(default=12.0, gt=0)
    color: Color = BLACK
    text_format: TextFormat | None = None
    custom_font: Payload | None = None


class EraseAreaCall(BakeModel):
    method: Literal["erase_area"] = "erase_area"
    document: Payload
    page_index: int
    rect: Rect


class ReplaceImageCall(BakeModel):
    method: Literal["replace_image"] = "replace_image"
    document: Payload
    page_index: int
    rect: Rect
    image: Payload
    image_type: ImageType


class DeleteImageCall(BakeModel):
    method: Literal["delete_image"] = "delete_image"
    document: Payload
    page_index: int
    rect: Rect


class AddTextCall(BakeModel):
    method: Literal["add_text"] = "add_text"
    document: Payload
    page_index: int
    x: float
    y: float
    text: str
    font_family: str | None = None
    font_size: float = Field(default=12.0, gt=0)
    color: Color = BLACK
    text_format: TextFormat | None = None
    width: float = 0.0
    height: float = 0.0
    custom_font: Payload | None = None


class AddImageCall(BakeModel):
    method: Literal["add_image"] = "add_image"
    document: Payload
    page_index: int
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    image: Payload
    image_type: ImageType


class BakeHighlightsCall(BakeModel):
    method: Literal["bake_highlights"] = "bake_highlights"
    document: Payload
    highlights: list[RectangleOverlay]


class CompressDocumentCall(BakeModel):
    method: Literal["compress_document"] = "compress_document"
    document: Payload


class BakeCall(BakeModel):
    method: Literal["bake"] = "bake"
    document: Payload
    overlays: list[Overlay]
    custom_font: Payload | None = None
    strict: bool | None = None


RpcCall = Annotated[
    Union[
        MergeDocumentsCall,
        ReorderPagesCall,
        InsertBlankPageCall,
        DeletePageCall,
        RotatePageCall,
        ReplaceTextRegionCall,
        EraseAreaCall,
        ReplaceImageCall,
        DeleteImageCall,
        AddTextCall,
        AddImageCall,
        BakeHighlightsCall,
        CompressDocumentCall,
        BakeCall,
    ],
    Field(discriminator="method"),
]


class RpcRequest(BaseModel):
    id: str | None = None
    call: RpcCall


class RpcResponse(BaseModel):
    id: str
    result: Payload | None = None
    error: str | None = None
    code: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
