from __future__ import annotations

import logging
import platform
import re
import shutil
import subprocess
from dataclasses import dataclass

import cv2
import numpy as np

from visionoverlay.errors import CaptureStartFailure, DeviceUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CameraDevice:
    idx: int
    name: str


class OpenCVCameraSource:
    """Frame source backed by ``cv2.VideoCapture``."""

    def __init__(self, camera_id: int = 0, width: int | None = None, height: int | None = None) -> None:
        self.camera_id = camera_id
        self.width = width
        self.height = height
        self._cap = None

    def open(self) -> None:
        try:
            if platform.system() == "Darwin":
                cap = cv2.VideoCapture(self.camera_id, cv2.CAP_AVFOUNDATION)
            else:
                cap = cv2.VideoCapture(self.camera_id)
        except Exception as e:
            raise CaptureStartFailure(str(e)) from e

        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailable(f"Could not open camera_id={self.camera_id}")

        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        logger.info("Opened camera_id=%s", self.camera_id)

    def read(self) -> tuple[bool, np.ndarray | None]:
        if self._cap is None:
            return False, None
        return self._cap.read()

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


def resolve_camera_id(camera_id: int, camera_name: str | None) -> int:
    if not camera_name:
        return camera_id

    wanted = camera_name.strip()
    devices = list_cameras_avfoundation()
    resolved = _pick_best_match(wanted, devices)
    if resolved is not None:
        return resolved

    available = ", ".join([f"[{d.idx}] {d.name}" for d in devices]) or "none found"
    raise DeviceUnavailable(
        f'Camera name "{camera_name}" not found. Available video devices: {available}. '
        "Use --camera-id explicitly if needed."
    )


def list_cameras_avfoundation() -> list[CameraDevice]:
    ffmpeg = shutil.which("ffmpeg")
    if not ffmpeg:
        return []

    try:
        proc = subprocess.run(
            [ffmpeg, "-f", "avfoundation", "-list_devices", "true", "-i", ""],
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.warning("ffmpeg device listing failed: %s", e)
        return []

    # ffmpeg writes device list to stderr for avfoundation.
    return parse_avfoundation_devices((proc.stderr or "") + "\n" + (proc.stdout or ""))


def parse_avfoundation_devices(text: str) -> list[CameraDevice]:
    in_video_section = False
    devices: list[CameraDevice] = []
    for line in text.splitlines():
        if "AVFoundation video devices" in line:
            in_video_section = True
            continue
        if in_video_section and "AVFoundation audio devices" in line:
            break
        if not in_video_section:
            continue

        m = re.search(r"\[(\d+)\]\s+(.*)$", line)
        if not m:
            continue
        devices.append(CameraDevice(idx=int(m.group(1)), name=m.group(2).strip()))
    return devices


def _pick_best_match(wanted: str, devices: list[CameraDevice]) -> int | None:
    if not devices:
        return None

    wanted_norm = _norm(wanted)
    wanted_tokens = set(wanted_norm.split())

    best: tuple[int, int] | None = None  # (score, -idx)
    for d in devices:
        name_norm = _norm(d.name)
        name_tokens = set(name_norm.split())

        score = 0
        if wanted_norm == name_norm:
            score += 100
        if wanted_norm in name_norm or name_norm in wanted_norm:
            score += 50
        score += 10 * len(wanted_tokens & name_tokens)

        if score <= 0:
            continue
        # Lower index wins ties.
        candidate = (score, -d.idx)
        if best is None or candidate > best:
            best = candidate

    return -best[1] if best is not None else None


def _norm(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", text.lower()).strip()
