"""Per-capability overlay layers and their rasterization onto preview frames."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, Union

import cv2
import numpy as np

from visionoverlay.geometry import to_layer_point, to_layer_point_in_rect, to_layer_rect
from visionoverlay.types import (
    MAX_CONTOURS,
    BoundingBoxResult,
    Capability,
    ContourResult,
    DetectionResult,
    LandmarkResult,
    Point,
    Rect,
    SkeletonResult,
    Size,
    TextResult,
)

JOINT_CONFIDENCE_THRESHOLD = 0.3
BORDER_WIDTH = 2
CORNER_RADIUS = 4
FILL_ALPHA = 0.1
LABEL_ALPHA = 0.7
LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_SCALE = 0.45
LABEL_THICKNESS = 1

Color = tuple[int, int, int]  # BGR


@dataclass(frozen=True)
class LayerStyle:
    color: Color
    line_width: int = 1
    joint_radius: int = 3
    show_confidence: bool = False


STYLES: dict[Capability, LayerStyle] = {
    Capability.FACE: LayerStyle(color=(0, 255, 0)),
    Capability.FACE_LANDMARKS: LayerStyle(color=(0, 0, 255)),
    Capability.HAND_POSE: LayerStyle(color=(0, 165, 255), line_width=2, joint_radius=3),
    Capability.BODY_POSE: LayerStyle(color=(200, 80, 160), line_width=2, joint_radius=4),
    Capability.OBJECT_DETECTION: LayerStyle(color=(255, 128, 0), show_confidence=True),
    Capability.TEXT_RECOGNITION: LayerStyle(color=(0, 220, 255)),
    Capability.CONTOURS: LayerStyle(color=(255, 255, 0)),
}


@dataclass(frozen=True)
class RectPrimitive:
    rect: Rect
    color: Color
    border_width: int = BORDER_WIDTH
    corner_radius: int = CORNER_RADIUS
    fill_alpha: float = FILL_ALPHA


@dataclass(frozen=True)
class LabelPrimitive:
    text: str
    rect: Rect
    color: Color
    background_alpha: float = LABEL_ALPHA


@dataclass(frozen=True)
class PolylinePrimitive:
    points: tuple[Point, ...]
    color: Color
    width: int = 1


@dataclass(frozen=True)
class CirclePrimitive:
    center: Point
    radius: int
    color: Color


Primitive = Union[RectPrimitive, LabelPrimitive, PolylinePrimitive, CirclePrimitive]


@dataclass
class OverlayLayer:
    capability: Capability
    primitives: list = field(default_factory=list)
    renders: int = 0

    def replace(self, primitives: Sequence[Primitive]) -> None:
        self.primitives = list(primitives)
        self.renders += 1

    def clear(self) -> None:
        self.primitives = []

    def __len__(self) -> int:
        return len(self.primitives)


def label_chip(text: str, box: Rect, color: Color) -> LabelPrimitive:
    """Label sized to its text, sitting directly above ``box``."""
    (tw, th), baseline = cv2.getTextSize(text, LABEL_FONT, LABEL_SCALE, LABEL_THICKNESS)
    height = th + baseline + 4
    return LabelPrimitive(
        text=text,
        rect=Rect(box.x, box.y - height - 2, tw + 10, height),
        color=color,
    )


class OverlayRenderer:
    """Owns one layer per capability. Must only be used from the UI thread."""

    def __init__(self, styles: dict[Capability, LayerStyle] | None = None) -> None:
        self.styles = dict(STYLES)
        if styles:
            self.styles.update(styles)
        self.layers: dict[Capability, OverlayLayer] = {c: OverlayLayer(c) for c in Capability}
        self.detection_count = 0

    def render(self, capability: Capability, results: Sequence[DetectionResult], surface_size: Size) -> int:
        """Replace ``capability``'s layer with ``results``; returns the new detection count."""
        style = self.styles[capability]
        primitives: list[Primitive] = []
        contour_lines = 0
        for result in results:
            draw = self._drawers.get(type(result))
            if draw is None:
                raise TypeError(f"No overlay drawing for result type {type(result).__name__}")
            drawn = draw(self, result, style, surface_size)
            if isinstance(result, ContourResult):
                # Contour budget is per frame, across every contour result.
                drawn = drawn[: max(MAX_CONTOURS - contour_lines, 0)]
                contour_lines += len(drawn)
            primitives.extend(drawn)

        self.layers[capability].replace(primitives)
        self.detection_count = sum(len(layer) for layer in self.layers.values())
        return self.detection_count

    def clear_all(self) -> None:
        for layer in self.layers.values():
            layer.clear()
        self.detection_count = 0

    def _draw_box(self, result: BoundingBoxResult, style: LayerStyle, size: Size) -> list[Primitive]:
        text = f"{result.label}: {result.confidence:.2f}" if style.show_confidence else result.label
        return self._box_with_label(result.rect, text, style, size)

    def _draw_text(self, result: TextResult, style: LayerStyle, size: Size) -> list[Primitive]:
        return self._box_with_label(result.rect, result.text, style, size)

    @staticmethod
    def _box_with_label(rect: Rect, text: str | None, style: LayerStyle, size: Size) -> list[Primitive]:
        box = to_layer_rect(rect, size)
        primitives: list[Primitive] = [RectPrimitive(rect=box, color=style.color)]
        if text:
            primitives.append(label_chip(text, box, style.color))
        return primitives

    def _draw_landmarks(self, result: LandmarkResult, style: LayerStyle, size: Size) -> list[Primitive]:
        return [
            PolylinePrimitive(
                points=tuple(to_layer_point_in_rect(p, result.face_rect, size) for p in group),
                color=style.color,
                width=style.line_width,
            )
            for group in result.point_groups
            if group
        ]

    def _draw_skeleton(self, result: SkeletonResult, style: LayerStyle, size: Size) -> list[Primitive]:
        visible = {
            name: to_layer_point(point, size)
            for name, (point, confidence) in result.joints.items()
            if confidence > JOINT_CONFIDENCE_THRESHOLD
        }
        primitives: list[Primitive] = [
            CirclePrimitive(center=center, radius=style.joint_radius, color=style.color)
            for center in visible.values()
        ]
        for a, b in result.edges:
            if a in visible and b in visible:
                primitives.append(
                    PolylinePrimitive(points=(visible[a], visible[b]), color=style.color, width=style.line_width)
                )
        return primitives

    def _draw_contours(self, result: ContourResult, style: LayerStyle, size: Size) -> list[Primitive]:
        return [
            PolylinePrimitive(
                points=tuple(to_layer_point(p, size) for p in polyline),
                color=style.color,
                width=style.line_width,
            )
            for polyline in result.polylines[:MAX_CONTOURS]
            if polyline
        ]

    _drawers = {
        BoundingBoxResult: _draw_box,
        TextResult: _draw_text,
        LandmarkResult: _draw_landmarks,
        SkeletonResult: _draw_skeleton,
        ContourResult: _draw_contours,
    }

    def composite(self, image: np.ndarray) -> np.ndarray:
        """Draw every layer onto ``image`` in place, in capability order."""
        for capability in Capability:
            for primitive in self.layers[capability].primitives:
                draw_primitive(image, primitive)
        return image


def draw_primitive(image: np.ndarray, primitive: Primitive) -> None:
    if isinstance(primitive, RectPrimitive):
        _blend_rect(image, primitive.rect, primitive.color, primitive.fill_alpha)
        _rounded_rect(image, primitive.rect, primitive.color, primitive.border_width, primitive.corner_radius)
    elif isinstance(primitive, LabelPrimitive):
        _blend_rect(image, primitive.rect, primitive.color, primitive.background_alpha)
        x, y, _, h = primitive.rect
        (_, th), _ = cv2.getTextSize(primitive.text, LABEL_FONT, LABEL_SCALE, LABEL_THICKNESS)
        origin = (int(round(x + 5)), int(round(y + (h + th) / 2)))
        cv2.putText(image, primitive.text, origin, LABEL_FONT, LABEL_SCALE, (255, 255, 255), LABEL_THICKNESS, cv2.LINE_AA)
    elif isinstance(primitive, PolylinePrimitive):
        pts = np.array([[int(round(p.x)), int(round(p.y))] for p in primitive.points], dtype=np.int32)
        if len(pts) >= 2:
            cv2.polylines(image, [pts], False, primitive.color, primitive.width, cv2.LINE_AA)
    elif isinstance(primitive, CirclePrimitive):
        center = (int(round(primitive.center.x)), int(round(primitive.center.y)))
        cv2.circle(image, center, primitive.radius, primitive.color, -1, cv2.LINE_AA)
    else:
        raise TypeError(f"Unknown primitive: {type(primitive).__name__}")


def _clip_rect(image: np.ndarray, rect: Rect) -> tuple[int, int, int, int] | None:
    h, w = image.shape[:2]
    x0 = max(int(round(rect.x)), 0)
    y0 = max(int(round(rect.y)), 0)
    x1 = min(int(round(rect.x + rect.width)), w)
    y1 = min(int(round(rect.y + rect.height)), h)
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def _blend_rect(image: np.ndarray, rect: Rect, color: Color, alpha: float) -> None:
    clipped = _clip_rect(image, rect)
    if clipped is None or alpha <= 0:
        return
    x0, y0, x1, y1 = clipped
    roi = image[y0:y1, x0:x1]
    tint = np.empty_like(roi)
    tint[:] = color
    image[y0:y1, x0:x1] = cv2.addWeighted(tint, alpha, roi, 1.0 - alpha, 0)


def _rounded_rect(image: np.ndarray, rect: Rect, color: Color, thickness: int, radius: int) -> None:
    x0, y0 = int(round(rect.x)), int(round(rect.y))
    x1, y1 = int(round(rect.x + rect.width)), int(round(rect.y + rect.height))
    r = max(0, min(radius, (x1 - x0) // 2, (y1 - y0) // 2))
    if r == 0:
        cv2.rectangle(image, (x0, y0), (x1, y1), color, thickness)
        return
    cv2.line(image, (x0 + r, y0), (x1 - r, y0), color, thickness)
    cv2.line(image, (x0 + r, y1), (x1 - r, y1), color, thickness)
    cv2.line(image, (x0, y0 + r), (x0, y1 - r), color, thickness)
    cv2.line(image, (x1, y0 + r), (x1, y1 - r), color, thickness)
    cv2.ellipse(image, (x0 + r, y0 + r), (r, r), 180, 0, 90, color, thickness)
    cv2.ellipse(image, (x1 - r, y0 + r), (r, r), 270, 0, 90, color, thickness)
    cv2.ellipse(image, (x1 - r, y1 - r), (r, r), 0, 0, 90, color, thickness)
    cv2.ellipse(image, (x0 + r, y1 - r), (r, r), 90, 0, 90, color, thickness)
