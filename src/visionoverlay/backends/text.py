"""Tesseract text recognition grouped into lines."""

from __future__ import annotations

import cv2

from visionoverlay.backends.base import Analyzer
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.geometry import normalize_rect
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import Frame, Size, TextResult


class TesseractTextAnalyzer(Analyzer):
    """Recognize text lines with Tesseract.

    ``recognition_level="fast"`` runs on a half-resolution grayscale image;
    ``"accurate"`` keeps the full frame. Language correction maps onto
    Tesseract's dictionary word lists.
    """

    name = "tesseract"

    def __init__(
        self,
        recognition_level: str = "accurate",
        uses_language_correction: bool = True,
        languages: str = "eng",
        min_confidence: float = 40.0,
    ) -> None:
        try:
            import pytesseract
        except Exception as e:
            raise ModelLoadFailure("text_recognition", "pytesseract is not installed") from e

        try:
            pytesseract.get_tesseract_version()
        except Exception as e:
            raise ModelLoadFailure("text_recognition", f"tesseract binary unavailable: {e}") from e

        if recognition_level not in ("fast", "accurate"):
            raise ModelLoadFailure("text_recognition", f"unknown recognition level: {recognition_level}")

        self._tess = pytesseract
        self.recognition_level = recognition_level
        self.uses_language_correction = uses_language_correction
        self.languages = languages
        self.min_confidence = min_confidence
        self.tess_config = build_tesseract_config(uses_language_correction)

    @classmethod
    def from_request(cls, request: DetectionRequest) -> "TesseractTextAnalyzer":
        return cls(
            recognition_level=str(request.option("recognition_level", "accurate")),
            uses_language_correction=bool(request.option("uses_language_correction", True)),
            languages=str(request.option("languages", "eng")),
            min_confidence=float(request.option("min_confidence", 40.0)),
        )

    def analyze(self, frame: Frame) -> list[TextResult]:
        gray = cv2.cvtColor(frame.image, cv2.COLOR_BGR2GRAY)
        scale = 1.0
        if self.recognition_level == "fast":
            scale = 0.5
            gray = cv2.resize(gray, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)

        data = self._tess.image_to_data(
            gray,
            lang=self.languages,
            config=self.tess_config,
            output_type=self._tess.Output.DICT,
        )
        size = Size(frame.size.width * scale, frame.size.height * scale)
        return group_lines(data, size, self.min_confidence)


def build_tesseract_config(uses_language_correction: bool) -> str:
    # Sparse text mode finds scattered words in camera frames.
    parts = ["--oem 1", "--psm 11"]
    if not uses_language_correction:
        parts += ["-c load_system_dawg=0", "-c load_freq_dawg=0"]
    return " ".join(parts)


def group_lines(data: dict, size: Size, min_confidence: float) -> list[TextResult]:
    """Merge Tesseract word boxes sharing a block/paragraph/line into one result."""
    lines: dict[tuple[int, int, int], dict] = {}
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            continue
        if conf < min_confidence:
            continue

        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        x, y = int(data["left"][i]), int(data["top"][i])
        w, h = int(data["width"][i]), int(data["height"][i])
        line = lines.get(key)
        if line is None:
            lines[key] = {"words": [word], "box": [x, y, x + w, y + h]}
        else:
            line["words"].append(word)
            box = line["box"]
            box[0], box[1] = min(box[0], x), min(box[1], y)
            box[2], box[3] = max(box[2], x + w), max(box[3], y + h)

    results: list[TextResult] = []
    for key in sorted(lines):
        x0, y0, x1, y1 = lines[key]["box"]
        results.append(
            TextResult(
                rect=normalize_rect(x0, y0, x1 - x0, y1 - y0, size),
                text=" ".join(lines[key]["words"]),
            )
        )
    return results
