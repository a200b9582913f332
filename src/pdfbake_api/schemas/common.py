from __future__ import annotations

import base64
import binascii
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


class BakeModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class Color(BakeModel):
    r: float = Field(ge=0.0, le=1.0)
    g: float = Field(ge=0.0, le=1.0)
    b: float = Field(ge=0.0, le=1.0)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.r, self.g, self.b)


WHITE = Color(r=1.0, g=1.0, b=1.0)
BLACK = Color(r=0.0, g=0.0, b=0.0)


class Rect(BakeModel):
    """Axis-aligned box in document space; (x, y) is the bottom-left corner."""

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)

    def expanded(self, padding: float) -> "Rect":
        return Rect(
            x=self.x - padding,
            y=self.y - padding,
            width=self.width + padding * 2,
            height=self.height + padding * 2,
        )


def _decode_payload(value: object) -> object:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("binary payloads must be base64 encoded") from exc
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


# Raw bytes in Python, base64 text on the wire.
Payload = Annotated[
    bytes,
    BeforeValidator(_decode_payload),
    PlainSerializer(lambda value: base64.b64encode(value).decode("ascii"), return_type=str, when_used="json"),
]
