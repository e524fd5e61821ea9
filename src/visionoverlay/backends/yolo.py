from __future__ import annotations

from visionoverlay.backends.base import Analyzer
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.geometry import clamp_unit
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import BoundingBoxResult, Frame, Rect


class YoloObjectAnalyzer(Analyzer):
    name = "yolo"

    def __init__(
        self,
        model_path: str = "yolo11s.pt",
        min_confidence: float = 0.3,
        iou_threshold: float = 0.45,
        imgsz: int = 640,
        device: str = "cpu",
    ) -> None:
        try:
            from ultralytics import YOLO
        except Exception as e:
            raise ModelLoadFailure(
                "object_detection",
                "YOLO backend requires ultralytics. Install with: pip install ultralytics",
            ) from e

        try:
            self.model = YOLO(model_path)
        except Exception as e:
            raise ModelLoadFailure("object_detection", f"could not load {model_path}: {e}") from e
        self.model_path = model_path
        self.min_confidence = min_confidence
        self.iou_threshold = iou_threshold
        self.imgsz = imgsz
        self.device = device

    @classmethod
    def from_request(cls, request: DetectionRequest, model_key: str = "model_path") -> "YoloObjectAnalyzer":
        return cls(
            model_path=str(request.option(model_key)),
            min_confidence=float(request.option("min_confidence", 0.3)),
            iou_threshold=float(request.option("iou_threshold", 0.45)),
            imgsz=int(request.option("imgsz", 640)),
            device=str(request.option("device", "cpu")),
        )

    def analyze(self, frame: Frame) -> list[BoundingBoxResult]:
        results = self.model.predict(
            source=frame.image,
            conf=self.min_confidence,
            iou=self.iou_threshold,
            imgsz=self.imgsz,
            device=self.device,
            verbose=False,
        )
        if not results:
            return []

        result = results[0]
        boxes = result.boxes
        if boxes is None or len(boxes) == 0:
            return []

        names = result.names or {}
        xyxyn = boxes.xyxyn.cpu().numpy()
        confs = boxes.conf.cpu().numpy()
        classes = boxes.cls.cpu().numpy().astype(int)
        # Compare in the tensor's precision: float32(0.3) widens to just above 0.3.
        threshold = confs.dtype.type(self.min_confidence)

        detections: list[BoundingBoxResult] = []
        for (x1, y1, x2, y2), conf, cls_id in zip(xyxyn, confs, classes):
            if conf <= threshold:
                continue
            x1, y1 = clamp_unit(float(x1)), clamp_unit(float(y1))
            x2, y2 = clamp_unit(float(x2)), clamp_unit(float(y2))
            detections.append(
                BoundingBoxResult(
                    rect=Rect(x1, y1, x2 - x1, y2 - y1),
                    label=str(names.get(int(cls_id), "Unknown")),
                    confidence=float(conf),
                )
            )
        return detections
