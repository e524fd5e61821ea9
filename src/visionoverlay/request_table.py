"""Declarative table of the detection request issued for each capability.

Requests are configured once at startup. The dispatcher selects rows from
this table by the enabled capability set instead of holding one field per
request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from visionoverlay.types import (
    BoundingBoxResult,
    Capability,
    ContourResult,
    LandmarkResult,
    SkeletonResult,
    TextResult,
)


@dataclass(frozen=True)
class RequestSpec:
    capability: Capability
    result_kind: type
    defaults: Mapping[str, Any] = field(default_factory=dict)
    requires: Capability | None = None


@dataclass(frozen=True)
class DetectionRequest:
    """A configured request, built once and reused for every frame."""

    capability: Capability
    result_kind: type
    options: Mapping[str, Any]
    requires: Capability | None = None

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


REQUEST_TABLE: dict[Capability, RequestSpec] = {
    Capability.FACE: RequestSpec(
        Capability.FACE,
        BoundingBoxResult,
        {
            "model_path": "models/mediapipe/blaze_face_short_range.tflite",
            "min_detection_confidence": 0.5,
        },
    ),
    Capability.FACE_LANDMARKS: RequestSpec(
        Capability.FACE_LANDMARKS,
        LandmarkResult,
        {
            "model_path": "models/mediapipe/face_landmarker.task",
            "num_faces": 2,
            "min_detection_confidence": 0.5,
        },
        requires=Capability.FACE,
    ),
    Capability.HAND_POSE: RequestSpec(
        Capability.HAND_POSE,
        SkeletonResult,
        {
            "model_path": "models/mediapipe/hand_landmarker.task",
            "max_hands": 2,
            "min_detection_confidence": 0.5,
        },
    ),
    Capability.BODY_POSE: RequestSpec(
        Capability.BODY_POSE,
        SkeletonResult,
        {
            "model_path": "models/mediapipe/pose_landmarker_lite.task",
            "num_poses": 1,
            "min_detection_confidence": 0.5,
        },
    ),
    Capability.OBJECT_DETECTION: RequestSpec(
        Capability.OBJECT_DETECTION,
        BoundingBoxResult,
        {
            "model_path": "yolo11s.pt",
            "fallback_model_path": "yolo11n.pt",
            "min_confidence": 0.3,
            "iou_threshold": 0.45,
            "imgsz": 640,
            "device": "cpu",
        },
    ),
    Capability.TEXT_RECOGNITION: RequestSpec(
        Capability.TEXT_RECOGNITION,
        TextResult,
        {
            "recognition_level": "accurate",
            "uses_language_correction": True,
            "languages": "eng",
            "min_confidence": 40.0,
        },
    ),
    Capability.CONTOURS: RequestSpec(
        Capability.CONTOURS,
        ContourResult,
        {
            "contrast_adjustment": 1.0,
            "detects_dark_on_light": True,
            "min_points": 8,
        },
    ),
}


def build_requests(overrides: Mapping[Capability, Mapping[str, Any]] | None = None) -> dict[Capability, DetectionRequest]:
    overrides = overrides or {}
    requests: dict[Capability, DetectionRequest] = {}
    for capability, spec in REQUEST_TABLE.items():
        options = dict(spec.defaults)
        options.update(overrides.get(capability, {}))
        requests[capability] = DetectionRequest(
            capability=capability,
            result_kind=spec.result_kind,
            options=MappingProxyType(options),
            requires=spec.requires,
        )
    return requests


def select_requests(
    requests: Mapping[Capability, DetectionRequest],
    enabled: frozenset[Capability] | set[Capability],
    available: frozenset[Capability] | set[Capability] | None = None,
) -> list[DetectionRequest]:
    """Requests to issue for one frame, in table order.

    A request is issued only when its capability is enabled and available and,
    for dependent requests, its prerequisite is enabled too.
    """
    selected: list[DetectionRequest] = []
    for capability in REQUEST_TABLE:
        request = requests.get(capability)
        if request is None or capability not in enabled:
            continue
        if available is not None and capability not in available:
            continue
        if request.requires is not None and request.requires not in enabled:
            continue
        selected.append(request)
    return selected
