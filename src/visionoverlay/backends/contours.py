from __future__ import annotations

import cv2
import numpy as np

from visionoverlay.backends.base import Analyzer
from visionoverlay.geometry import clamp_unit
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import MAX_CONTOURS, ContourResult, Frame, Point


class ContourAnalyzer(Analyzer):
    """Extract outline polylines with OpenCV.

    The frame is contrast-scaled, binarized with Otsu's threshold and traced.
    With ``detects_dark_on_light`` the threshold is inverted so dark shapes on a
    light background become the traced foreground. Contours are reported
    longest first, at most ``MAX_CONTOURS`` per frame.
    """

    name = "opencv-contours"

    def __init__(
        self,
        contrast_adjustment: float = 1.0,
        detects_dark_on_light: bool = True,
        min_points: int = 8,
    ) -> None:
        self.contrast_adjustment = contrast_adjustment
        self.detects_dark_on_light = detects_dark_on_light
        self.min_points = max(int(min_points), 2)

    @classmethod
    def from_request(cls, request: DetectionRequest) -> "ContourAnalyzer":
        return cls(
            contrast_adjustment=float(request.option("contrast_adjustment", 1.0)),
            detects_dark_on_light=bool(request.option("detects_dark_on_light", True)),
            min_points=int(request.option("min_points", 8)),
        )

    def analyze(self, frame: Frame) -> list[ContourResult]:
        gray = cv2.cvtColor(frame.image, cv2.COLOR_BGR2GRAY)
        adjusted = cv2.convertScaleAbs(gray, alpha=self.contrast_adjustment, beta=0)
        mode = cv2.THRESH_BINARY_INV if self.detects_dark_on_light else cv2.THRESH_BINARY
        _, binary = cv2.threshold(adjusted, 0, 255, mode | cv2.THRESH_OTSU)
        contours, _ = cv2.findContours(binary, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)

        h, w = frame.image.shape[:2]
        scale = np.array([max(w, 1), max(h, 1)], dtype=np.float32)
        polylines = []
        for contour in sorted(contours, key=lambda c: cv2.arcLength(c, True), reverse=True):
            if len(polylines) == MAX_CONTOURS:
                break
            if len(contour) < self.min_points:
                continue
            pts = contour.reshape(-1, 2).astype(np.float32) / scale
            polylines.append(tuple(Point(clamp_unit(x), clamp_unit(y)) for x, y in pts))

        if not polylines:
            return []
        return [ContourResult(polylines=tuple(polylines))]
