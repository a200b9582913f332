from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Callable

import fitz

from pdfbake_api.core.errors import invalid_input


Point = tuple[float, float]

_TOKEN = re.compile(r"[MmLlHhVvCcQqAaZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_ARITY = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "Q": 4, "A": 7, "Z": 0}


@dataclass
class Segment:
    start: Point
    end: Point
    control1: Point | None = None
    control2: Point | None = None

    @property
    def is_curve(self) -> bool:
        return self.control1 is not None


@dataclass
class Subpath:
    start: Point
    segments: list[Segment] = field(default_factory=list)
    closed: bool = False


def _tokenize(path: str) -> list[str]:
    tokens = _TOKEN.findall(path)
    leftovers = _TOKEN.sub("", path).replace(",", "").strip()
    if leftovers:
        raise invalid_input("invalid_path", "Path contains unsupported tokens", fragment=leftovers[:32])
    return tokens


def _arc_to_curves(start: Point, rx: float, ry: float, angle: float, large: bool, sweep: bool, end: Point) -> list[Segment]:
    """Lower an SVG elliptical arc to cubic Bezier segments of at most 90 degrees."""
    x1, y1 = start
    x2, y2 = end
    if rx == 0 or ry == 0 or start == end:
        return [Segment(start, end)]
    rx, ry = abs(rx), abs(ry)
    phi = math.radians(angle % 360)
    cos_phi, sin_phi = math.cos(phi), math.sin(phi)

    dx, dy = (x1 - x2) / 2, (y1 - y2) / 2
    x1p = cos_phi * dx + sin_phi * dy
    y1p = -sin_phi * dx + cos_phi * dy

    scale = (x1p ** 2) / (rx ** 2) + (y1p ** 2) / (ry ** 2)
    if scale > 1:
        rx *= math.sqrt(scale)
        ry *= math.sqrt(scale)

    numerator = rx ** 2 * ry ** 2 - rx ** 2 * y1p ** 2 - ry ** 2 * x1p ** 2
    denominator = rx ** 2 * y1p ** 2 + ry ** 2 * x1p ** 2
    factor = math.sqrt(max(0.0, numerator / denominator)) if denominator else 0.0
    if large == sweep:
        factor = -factor
    cxp = factor * rx * y1p / ry
    cyp = -factor * ry * x1p / rx
    cx = cos_phi * cxp - sin_phi * cyp + (x1 + x2) / 2
    cy = sin_phi * cxp + cos_phi * cyp + (y1 + y2) / 2

    def _angle(ux: float, uy: float, vx: float, vy: float) -> float:
        return math.atan2(ux * vy - uy * vx, ux * vx + uy * vy)

    theta1 = _angle(1, 0, (x1p - cxp) / rx, (y1p - cyp) / ry)
    delta = _angle((x1p - cxp) / rx, (y1p - cyp) / ry, (-x1p - cxp) / rx, (-y1p - cyp) / ry)
    if not sweep and delta > 0:
        delta -= 2 * math.pi
    elif sweep and delta < 0:
        delta += 2 * math.pi

    pieces = max(1, math.ceil(abs(delta) / (math.pi / 2) - 1e-9))
    step = delta / pieces
    kappa = 4 / 3 * math.tan(step / 4)

    def _point(theta: float) -> Point:
        px, py = rx * math.cos(theta), ry * math.sin(theta)
        return (cx + cos_phi * px - sin_phi * py, cy + sin_phi * px + cos_phi * py)

    def _derivative(theta: float) -> Point:
        px, py = -rx * math.sin(theta), ry * math.cos(theta)
        return (cos_phi * px - sin_phi * py, sin_phi * px + cos_phi * py)

    segments: list[Segment] = []
    current = start
    theta = theta1
    for index in range(pieces):
        next_theta = theta + step
        d1 = _derivative(theta)
        d2 = _derivative(next_theta)
        target = end if index == pieces - 1 else _point(next_theta)
        c1 = (current[0] + kappa * d1[0], current[1] + kappa * d1[1])
        c2 = (target[0] - kappa * d2[0], target[1] - kappa * d2[1])
        segments.append(Segment(current, target, c1, c2))
        current = target
        theta = next_theta
    return segments


def parse_path(path: str) -> list[Subpath]:
    """Parse an SVG-style path (M L H V C Q A Z, absolute or relative)."""
    tokens = _tokenize(path)
    subpaths: list[Subpath] = []
    current: Subpath | None = None
    position: Point = (0.0, 0.0)
    command = ""
    index = 0

    while index < len(tokens):
        token = tokens[index]
        if token.isalpha():
            command = token
            index += 1
            if command in "Zz":
                if current is not None:
                    if position != current.start:
                        current.segments.append(Segment(position, current.start))
                    current.closed = True
                    position = current.start
                    current = None
                continue
        elif not command:
            raise invalid_input("invalid_path", "Path must start with a move command")

        upper = command.upper()
        if upper == "Z":
            raise invalid_input("invalid_path", "Close command takes no coordinates")
        arity = _ARITY[upper]
        values = tokens[index : index + arity]
        if len(values) < arity or any(value.isalpha() for value in values):
            raise invalid_input("invalid_path", "Path command is missing coordinates", command=command)
        numbers = [float(value) for value in values]
        index += arity
        relative = command.islower()
        ox, oy = position if relative else (0.0, 0.0)

        if upper == "M":
            position = (ox + numbers[0], oy + numbers[1])
            current = Subpath(start=position)
            subpaths.append(current)
            # Implicit coordinates after a move are line-tos.
            command = "l" if relative else "L"
            continue

        if current is None:
            current = Subpath(start=position)
            subpaths.append(current)

        if upper == "L":
            target = (ox + numbers[0], oy + numbers[1])
            current.segments.append(Segment(position, target))
        elif upper == "H":
            target = (ox + numbers[0], position[1])
            current.segments.append(Segment(position, target))
        elif upper == "V":
            target = (position[0], oy + numbers[0])
            current.segments.append(Segment(position, target))
        elif upper == "C":
            c1 = (ox + numbers[0], oy + numbers[1])
            c2 = (ox + numbers[2], oy + numbers[3])
            target = (ox + numbers[4], oy + numbers[5])
            current.segments.append(Segment(position, target, c1, c2))
        elif upper == "Q":
            control = (ox + numbers[0], oy + numbers[1])
            target = (ox + numbers[2], oy + numbers[3])
            c1 = (position[0] + 2 / 3 * (control[0] - position[0]), position[1] + 2 / 3 * (control[1] - position[1]))
            c2 = (target[0] + 2 / 3 * (control[0] - target[0]), target[1] + 2 / 3 * (control[1] - target[1]))
            current.segments.append(Segment(position, target, c1, c2))
        else:
            target = (ox + numbers[5], oy + numbers[6])
            current.segments.extend(
                _arc_to_curves(position, numbers[0], numbers[1], numbers[2], bool(numbers[3]), bool(numbers[4]), target)
            )
        position = target

    return subpaths


def stroke_path(
    page: fitz.Page,
    path: str,
    to_page: Callable[[float, float], fitz.Point],
    color: tuple[float, float, float],
    width: float,
    opacity: float = 1.0,
) -> int:
    """Stroke ``path`` (document space) onto ``page``; returns the number of segments drawn."""
    subpaths = parse_path(path)
    shape = page.new_shape()
    drawn = 0
    for subpath in subpaths:
        if not subpath.segments:
            continue
        for segment in subpath.segments:
            start = to_page(*segment.start)
            end = to_page(*segment.end)
            if segment.is_curve:
                shape.draw_bezier(start, to_page(*segment.control1), to_page(*segment.control2), end)
            else:
                shape.draw_line(start, end)
            drawn += 1
        shape.finish(
            color=color,
            fill=None,
            width=width,
            lineCap=1,
            lineJoin=1,
            closePath=subpath.closed,
            stroke_opacity=opacity,
        )
    if drawn:
        shape.commit(overlay=True)
    return drawn
