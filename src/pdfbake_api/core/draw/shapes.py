from __future__ import annotations

import math

from pdfbake_api.core.transform import format_number, points_to_path_string


ARROW_HEAD_LENGTH = 10.0
ARROW_HEAD_ANGLE = math.pi / 6
STAR_POINTS = 5
STAR_INNER_RATIO = 0.4


# All builders work in document space: (x, y) is the bottom-left corner of the
# bounding box and Y grows upward.


def ellipse_path(x: float, y: float, width: float, height: float) -> str:
    rx, ry = width / 2, height / 2
    cx, cy = x + rx, y + ry
    left = f"{format_number(cx - rx)} {format_number(cy)}"
    right = f"{format_number(cx + rx)} {format_number(cy)}"
    radii = f"{format_number(rx)} {format_number(ry)}"
    return f"M {left} A {radii} 0 1 0 {right} A {radii} 0 1 0 {left} Z"


def line_path(x: float, y: float, width: float, height: float) -> str:
    # Drawn from the top-left to the bottom-right of the box, the direction of a screen drag.
    return points_to_path_string([(x, y + height), (x + width, y)])


def arrow_path(x: float, y: float, width: float, height: float) -> str:
    start = (x, y + height)
    tip = (x + width, y)
    angle = math.atan2(tip[1] - start[1], tip[0] - start[0])
    heads = [
        (
            tip[0] - ARROW_HEAD_LENGTH * math.cos(angle + offset),
            tip[1] - ARROW_HEAD_LENGTH * math.sin(angle + offset),
        )
        for offset in (-ARROW_HEAD_ANGLE, ARROW_HEAD_ANGLE)
    ]
    shaft = points_to_path_string([start, tip])
    head = points_to_path_string([heads[0], tip, heads[1]])
    return f"{shaft} {head}"


def triangle_path(x: float, y: float, width: float, height: float) -> str:
    apex = (x + width / 2, y + height)
    return points_to_path_string([apex, (x + width, y), (x, y)]) + " Z"


def star_path(x: float, y: float, width: float, height: float) -> str:
    outer = min(width, height) / 2
    inner = outer * STAR_INNER_RATIO
    cx, cy = x + width / 2, y + height / 2
    vertices = []
    for index in range(STAR_POINTS * 2):
        radius = outer if index % 2 == 0 else inner
        theta = math.pi / 2 + index * math.pi / STAR_POINTS
        vertices.append((cx + radius * math.cos(theta), cy + radius * math.sin(theta)))
    return points_to_path_string(vertices) + " Z"


SHAPE_BUILDERS = {
    "circle": ellipse_path,
    "line": line_path,
    "arrow": arrow_path,
    "triangle": triangle_path,
    "star": star_path,
}


def shape_to_path(shape_kind: str, x: float, y: float, width: float, height: float) -> str:
    builder = SHAPE_BUILDERS.get(shape_kind)
    if builder is None:
        raise KeyError(f"No path lowering for shape {shape_kind!r}")
    return builder(x, y, width, height)
