from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

import cv2

from visionoverlay.backends.base import PerceptionBackend
from visionoverlay.dispatcher import DetectionDispatcher
from visionoverlay.overlay import OverlayRenderer
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import Capability, Frame
from visionoverlay.ui import UiDispatcher

logger = logging.getLogger(__name__)


@dataclass
class AnnotationArtifacts:
    video_path: Path
    summary_path: Path
    summary: dict


def annotate_video(
    backend: PerceptionBackend,
    requests: Mapping[Capability, DetectionRequest],
    enabled: frozenset[Capability],
    input_video: Path,
    output_dir: Path,
) -> AnnotationArtifacts:
    """Run the overlay pipeline over every frame of a recorded video.

    Frames are processed synchronously, so none are dropped.
    """
    if not input_video.exists():
        raise FileNotFoundError(f"Input video not found: {input_video}")

    output_dir.mkdir(parents=True, exist_ok=True)
    video_path = output_dir / f"{input_video.stem}_overlay.mp4"
    summary_path = output_dir / f"{input_video.stem}_overlay_summary.json"

    cap = cv2.VideoCapture(str(input_video))
    if not cap.isOpened():
        raise RuntimeError(f"Could not open video: {input_video}")

    ui = UiDispatcher()
    renderer = OverlayRenderer()
    result_counts: Counter[str] = Counter()

    def on_results(capability: Capability, results: list) -> None:
        result_counts[capability.value] += len(results)
        ui.post(renderer.render, capability, results, frame.size)

    dispatcher = DetectionDispatcher(backend, requests, on_results)
    available = sorted(c.value for c in backend.available)
    reserved = sorted(backend.reserved_models)
    latencies: dict[str, list[float]] = {}
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    writer = None
    frame_idx = 0
    max_detections = 0

    try:
        while True:
            ok, image = cap.read()
            if not ok:
                break
            frame_idx += 1
            frame = Frame(image=image, sequence=frame_idx)

            for outcome in dispatcher.dispatch(frame, enabled):
                latencies.setdefault(outcome.capability.value, []).append(outcome.latency_ms)
            ui.drain()
            max_detections = max(max_detections, renderer.detection_count)

            if writer is None:
                h, w = image.shape[:2]
                writer = cv2.VideoWriter(str(video_path), cv2.VideoWriter_fourcc(*"mp4v"), fps, (w, h))
            writer.write(renderer.composite(image.copy()))
    finally:
        cap.release()
        if writer is not None:
            writer.release()
        backend.close()

    summary = {
        "video": str(input_video),
        "output_video": str(video_path),
        "enabled": sorted(c.value for c in enabled),
        "available": available,
        "reserved_models": reserved,
        "processed_frames": frame_idx,
        "dispatched_frames": dispatcher.dispatched_frames,
        "failed_frames": dispatcher.failed_frames,
        "result_counts": dict(result_counts),
        "mean_latency_ms": {k: round(sum(v) / len(v), 2) for k, v in sorted(latencies.items())},
        "max_detection_count": max_detections,
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
    }

    with summary_path.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)

    logger.info("Annotated %d frames from %s", frame_idx, input_video)
    return AnnotationArtifacts(video_path=video_path, summary_path=summary_path, summary=summary)
