from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

from pdfbake_api.core.errors import InvalidImageFormatError
from pdfbake_api.schemas.common import Color, Rect


# Screen space: origin top-left, Y down. Document space: origin bottom-left, Y up.
# Both share units once the viewer zoom has been divided out.

_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_PATH_PAIR = re.compile(rf"([MLml])\s*({_NUMBER})[\s,]+({_NUMBER})")
_DATA_URL = re.compile(r"^data:image/(png|jpeg|jpg);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class DecodedImage:
    data: bytes
    image_type: Literal["png", "jpg"]


def screen_y_to_document_y(screen_y: float, page_height: float, element_height: float = 0.0) -> float:
    return page_height - screen_y - element_height


def screen_rect_to_document_rect(
    x: float,
    y: float,
    width: float,
    height: float,
    page_height: float,
    zoom: float = 1.0,
) -> Rect:
    scale = zoom or 1.0
    return Rect(
        x=x / scale,
        y=screen_y_to_document_y(y / scale, page_height, height / scale),
        width=width / scale,
        height=height / scale,
    )


def hex_to_normalized_color(value: str) -> Color:
    """Convert ``#rgb`` / ``#rrggbb`` (``#`` optional) to a 0-1 colour.

    The value is not validated: non-hex digits raise ``ValueError`` from
    ``int``. Callers are expected to check the format upstream.
    """
    digits = value.strip().lstrip("#")
    if len(digits) == 3:
        digits = "".join(char * 2 for char in digits)
    number = int(digits, 16)
    return Color(
        r=((number >> 16) & 0xFF) / 255,
        g=((number >> 8) & 0xFF) / 255,
        b=(number & 0xFF) / 255,
    )


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(round(float(value), 4))


def points_to_path_string(points: Iterable[tuple[float, float] | Sequence[float]]) -> str:
    parts: list[str] = []
    for index, point in enumerate(points):
        x, y = point[0], point[1]
        command = "M" if index == 0 else "L"
        parts.append(f"{command} {format_number(x)} {format_number(y)}")
    return " ".join(parts)


def flip_path_y(path: str, page_height: float) -> str:
    def _flip(match: re.Match[str]) -> str:
        command, x, y = match.group(1), match.group(2), match.group(3)
        return f"{command} {x} {format_number(page_height - float(y))}"

    return _PATH_PAIR.sub(_flip, path)


def decode_image_data_url(data_url: str) -> DecodedImage:
    match = _DATA_URL.match(data_url.strip())
    if not match:
        raise InvalidImageFormatError(
            status_code=400,
            code="invalid_image_format",
            message="Only PNG and JPEG base64 data URLs are supported",
        )
    image_type: Literal["png", "jpg"] = "png" if match.group(1) == "png" else "jpg"
    try:
        data = base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageFormatError(
            status_code=400,
            code="invalid_image_format",
            message="Image data URL payload is not valid base64",
        ) from exc
    return DecodedImage(data=data, image_type=image_type)
