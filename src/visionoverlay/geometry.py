"""Mapping between normalized detection geometry and surface pixels.

Normalized coordinates put the origin at the top-left of the frame, the same
convention OpenCV draws with, so no axis is flipped.
"""

from __future__ import annotations

from visionoverlay.types import Point, Rect, Size


def to_layer_point(point: Point, size: Size) -> Point:
    return Point(point.x * size.width, point.y * size.height)


def to_layer_rect(rect: Rect, size: Size) -> Rect:
    return Rect(
        rect.x * size.width,
        rect.y * size.height,
        rect.width * size.width,
        rect.height * size.height,
    )


def to_layer_point_in_rect(point: Point, parent: Rect, size: Size) -> Point:
    """Map a point given relative to ``parent`` (itself normalized) to pixels."""
    x = (parent.x + point.x * parent.width) * size.width
    y = (parent.y + point.y * parent.height) * size.height
    return Point(x, y)


def clamp_unit(value: float) -> float:
    return float(max(0.0, min(1.0, value)))


def normalize_rect(x: float, y: float, w: float, h: float, size: Size) -> Rect:
    """Convert a pixel rect to a normalized one, clipped to the frame."""
    fw = max(size.width, 1.0)
    fh = max(size.height, 1.0)
    x0 = clamp_unit(x / fw)
    y0 = clamp_unit(y / fh)
    x1 = clamp_unit((x + w) / fw)
    y1 = clamp_unit((y + h) / fh)
    return Rect(x0, y0, x1 - x0, y1 - y0)


def bounding_rect(points) -> Rect:
    """Smallest normalized rect enclosing ``points``."""
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    if not xs:
        return Rect(0.0, 0.0, 0.0, 0.0)
    x0, x1 = min(xs), max(xs)
    y0, y1 = min(ys), max(ys)
    return Rect(x0, y0, x1 - x0, y1 - y0)


def relative_to(point: Point, parent: Rect) -> Point:
    """Express a normalized point relative to ``parent``; inverse of the rect mapping."""
    w = parent.width if parent.width > 0 else 1.0
    h = parent.height if parent.height > 0 else 1.0
    return Point((point.x - parent.x) / w, (point.y - parent.y) / h)
