from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

from visionoverlay.backends.base import Analyzer, PerceptionBackend
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import Capability

logger = logging.getLogger(__name__)

FAST_OBJECT_MODEL = "object_detection_fast"


@dataclass
class LoadReport:
    loaded: list[Capability] = field(default_factory=list)
    failed: dict[Capability, str] = field(default_factory=dict)
    reserved: list[str] = field(default_factory=list)

    def status(self) -> str:
        if not self.loaded and not self.failed:
            return "No models configured"
        parts = []
        if self.loaded:
            parts.append("Loaded: " + ", ".join(c.value for c in self.loaded))
        if self.failed:
            parts.append("Unavailable: " + ", ".join(c.value for c in self.failed))
        return "; ".join(parts)


def build_analyzer(request: DetectionRequest) -> Analyzer:
    key = request.capability

    if key is Capability.FACE:
        from visionoverlay.backends.mediapipe_tasks import FaceRectangleAnalyzer

        return FaceRectangleAnalyzer(request)

    if key is Capability.FACE_LANDMARKS:
        from visionoverlay.backends.mediapipe_tasks import FaceLandmarkAnalyzer

        return FaceLandmarkAnalyzer(request)

    if key is Capability.HAND_POSE:
        from visionoverlay.backends.mediapipe_tasks import HandPoseAnalyzer

        return HandPoseAnalyzer(request)

    if key is Capability.BODY_POSE:
        from visionoverlay.backends.mediapipe_tasks import BodyPoseAnalyzer

        return BodyPoseAnalyzer(request)

    if key is Capability.OBJECT_DETECTION:
        from visionoverlay.backends.yolo import YoloObjectAnalyzer

        return YoloObjectAnalyzer.from_request(request)

    if key is Capability.TEXT_RECOGNITION:
        from visionoverlay.backends.text import TesseractTextAnalyzer

        return TesseractTextAnalyzer.from_request(request)

    if key is Capability.CONTOURS:
        from visionoverlay.backends.contours import ContourAnalyzer

        return ContourAnalyzer.from_request(request)

    raise ValueError(f"Unsupported capability: {request.capability}")


def build_fast_object_analyzer(request: DetectionRequest) -> Analyzer | None:
    if not request.option("fallback_model_path"):
        return None

    from visionoverlay.backends.yolo import YoloObjectAnalyzer

    return YoloObjectAnalyzer.from_request(request, model_key="fallback_model_path")


def build_backend(
    requests: Mapping[Capability, DetectionRequest],
    capabilities: frozenset[Capability] | None = None,
    analyzer_builder: Callable[[DetectionRequest], Analyzer] = build_analyzer,
    fallback_builder: Callable[[DetectionRequest], Analyzer | None] | None = build_fast_object_analyzer,
) -> tuple[PerceptionBackend, LoadReport]:
    """Load an analyzer for each requested capability.

    A failed load is logged and leaves its capability unavailable; it never
    stops the other capabilities from loading.
    """
    backend = PerceptionBackend()
    report = LoadReport()
    wanted = capabilities if capabilities is not None else frozenset(requests)

    for capability, request in requests.items():
        if capability not in wanted:
            continue
        try:
            analyzer = analyzer_builder(request)
        except ModelLoadFailure as e:
            logger.warning("Model load failed for %s: %s", capability.value, e.reason)
            report.failed[capability] = e.reason
            continue
        except Exception as e:
            logger.exception("Unexpected error loading %s", capability.value)
            report.failed[capability] = str(e)
            continue
        backend.register(capability, analyzer)
        report.loaded.append(capability)
        logger.info("Loaded %s analyzer (%s)", capability.value, analyzer.name)

    # The faster object model is held in reserve; dispatch only uses the primary.
    object_request = requests.get(Capability.OBJECT_DETECTION)
    if (
        fallback_builder is not None
        and object_request is not None
        and Capability.OBJECT_DETECTION in report.loaded
    ):
        try:
            fast = fallback_builder(object_request)
        except ModelLoadFailure as e:
            logger.warning("Fast object model unavailable: %s", e.reason)
            fast = None
        if fast is not None:
            backend.reserve(FAST_OBJECT_MODEL, fast)
            report.reserved.append(FAST_OBJECT_MODEL)

    return backend, report
