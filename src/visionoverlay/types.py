"""Common types shared by the capture, dispatch and overlay stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Union

import numpy as np


class Capability(str, Enum):
    """Detection capabilities that can be toggled independently."""

    FACE = "face"
    FACE_LANDMARKS = "face_landmarks"
    HAND_POSE = "hand_pose"
    BODY_POSE = "body_pose"
    OBJECT_DETECTION = "object_detection"
    TEXT_RECOGNITION = "text_recognition"
    CONTOURS = "contours"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class Point(NamedTuple):
    x: float
    y: float


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class Size(NamedTuple):
    width: float
    height: float


@dataclass(frozen=True)
class Frame:
    """A captured image. Detection code reads ``image`` but never writes to it."""

    image: np.ndarray
    sequence: int
    timestamp: float = 0.0

    @property
    def size(self) -> Size:
        h, w = self.image.shape[:2]
        return Size(float(w), float(h))


@dataclass(frozen=True)
class BoundingBoxResult:
    rect: Rect
    label: str
    confidence: float


@dataclass(frozen=True)
class LandmarkResult:
    """Landmark polylines whose points are relative to ``face_rect``."""

    face_rect: Rect
    point_groups: tuple[tuple[Point, ...], ...]


@dataclass(frozen=True)
class SkeletonResult:
    joints: dict[str, tuple[Point, float]]
    edges: tuple[tuple[str, str], ...] = field(default=())


# Upper bound on contour polylines produced and drawn per frame.
MAX_CONTOURS = 10


@dataclass(frozen=True)
class ContourResult:
    """Longest-first outline polylines, at most ``MAX_CONTOURS`` of them."""

    polylines: tuple[tuple[Point, ...], ...]


@dataclass(frozen=True)
class TextResult:
    rect: Rect
    text: str


DetectionResult = Union[
    BoundingBoxResult,
    LandmarkResult,
    SkeletonResult,
    ContourResult,
    TextResult,
]
