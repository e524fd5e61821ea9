from __future__ import annotations

import os
from pathlib import Path

import cv2

# Prefer CPU execution for broader compatibility on desktop machines.
os.environ.setdefault("MEDIAPIPE_DISABLE_GPU", "1")

import mediapipe as mp

from visionoverlay.backends.base import Analyzer
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.geometry import bounding_rect, clamp_unit, normalize_rect, relative_to
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import (
    BoundingBoxResult,
    Frame,
    LandmarkResult,
    Point,
    SkeletonResult,
)

# MediaPipe hand landmark indices, named after the joints they track.
HAND_JOINTS = (
    "wrist",
    "thumb_cmc", "thumb_mp", "thumb_ip", "thumb_tip",
    "index_mcp", "index_pip", "index_dip", "index_tip",
    "middle_mcp", "middle_pip", "middle_dip", "middle_tip",
    "ring_mcp", "ring_pip", "ring_dip", "ring_tip",
    "little_mcp", "little_pip", "little_dip", "little_tip",
)

HAND_EDGES = (
    ("wrist", "thumb_cmc"), ("thumb_cmc", "thumb_mp"), ("thumb_mp", "thumb_ip"), ("thumb_ip", "thumb_tip"),
    ("wrist", "index_mcp"), ("index_mcp", "index_pip"), ("index_pip", "index_dip"), ("index_dip", "index_tip"),
    ("wrist", "middle_mcp"), ("middle_mcp", "middle_pip"), ("middle_pip", "middle_dip"), ("middle_dip", "middle_tip"),
    ("wrist", "ring_mcp"), ("ring_mcp", "ring_pip"), ("ring_pip", "ring_dip"), ("ring_dip", "ring_tip"),
    ("wrist", "little_mcp"), ("little_mcp", "little_pip"), ("little_pip", "little_dip"), ("little_dip", "little_tip"),
)

# Pose landmarker (33 points) indices for the joints drawn on the body skeleton.
BODY_LANDMARKS = {
    "nose": 0,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}

BODY_EDGES = (
    ("nose", "neck"), ("neck", "left_shoulder"), ("neck", "right_shoulder"),
    ("left_shoulder", "left_elbow"), ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"), ("right_elbow", "right_wrist"),
    ("neck", "root"), ("root", "left_hip"), ("root", "right_hip"),
    ("left_hip", "left_knee"), ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"), ("right_knee", "right_ankle"),
)

FACE_FEATURES = (
    "FACE_LANDMARKS_LEFT_EYE",
    "FACE_LANDMARKS_RIGHT_EYE",
    "FACE_LANDMARKS_LEFT_EYEBROW",
    "FACE_LANDMARKS_RIGHT_EYEBROW",
    "FACE_LANDMARKS_NOSE",
    "FACE_LANDMARKS_LIPS",
)


def _load_vision(capability: str, model_path: str):
    path = Path(model_path)
    if not path.exists():
        raise ModelLoadFailure(
            capability,
            f"MediaPipe model not found at {path}. Run scripts/download_models.py first.",
        )
    try:
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision
    except Exception as e:
        raise ModelLoadFailure(capability, "installed mediapipe does not provide the tasks vision API") from e

    base_options = mp_python.BaseOptions(
        model_asset_path=str(path),
        delegate=mp_python.BaseOptions.Delegate.CPU,
    )
    return vision, base_options


def _mp_image(frame: Frame):
    frame_rgb = cv2.cvtColor(frame.image, cv2.COLOR_BGR2RGB)
    return mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)


def _point(landmark) -> Point:
    return Point(clamp_unit(float(landmark.x)), clamp_unit(float(landmark.y)))


def _midpoint(a: tuple[Point, float], b: tuple[Point, float]) -> tuple[Point, float]:
    (pa, ca), (pb, cb) = a, b
    return Point((pa.x + pb.x) / 2.0, (pa.y + pb.y) / 2.0), min(ca, cb)


class _TaskAnalyzer(Analyzer):
    def __init__(self) -> None:
        self.task = None

    def close(self) -> None:
        if self.task is not None and hasattr(self.task, "close"):
            self.task.close()
            self.task = None


class FaceRectangleAnalyzer(_TaskAnalyzer):
    name = "mediapipe-face"

    def __init__(self, request: DetectionRequest) -> None:
        super().__init__()
        vision, base_options = _load_vision(request.capability.value, request.option("model_path"))
        options = vision.FaceDetectorOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            min_detection_confidence=float(request.option("min_detection_confidence", 0.5)),
        )
        self.task = vision.FaceDetector.create_from_options(options)

    def analyze(self, frame: Frame) -> list[BoundingBoxResult]:
        detected = self.task.detect(_mp_image(frame))
        size = frame.size
        results: list[BoundingBoxResult] = []
        for det in detected.detections or []:
            box = det.bounding_box
            score = float(det.categories[0].score) if det.categories else 0.0
            rect = normalize_rect(box.origin_x, box.origin_y, box.width, box.height, size)
            results.append(BoundingBoxResult(rect=rect, label="Face", confidence=score))
        return results


class FaceLandmarkAnalyzer(_TaskAnalyzer):
    name = "mediapipe-face-landmarks"

    def __init__(self, request: DetectionRequest) -> None:
        super().__init__()
        vision, base_options = _load_vision(request.capability.value, request.option("model_path"))
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_faces=int(request.option("num_faces", 2)),
            min_face_detection_confidence=float(request.option("min_detection_confidence", 0.5)),
        )
        self.task = vision.FaceLandmarker.create_from_options(options)
        connections = vision.FaceLandmarksConnections
        self.features = [getattr(connections, name) for name in FACE_FEATURES if hasattr(connections, name)]

    def analyze(self, frame: Frame) -> list[LandmarkResult]:
        detected = self.task.detect(_mp_image(frame))
        results: list[LandmarkResult] = []
        for landmarks in detected.face_landmarks or []:
            points = [_point(lm) for lm in landmarks]
            face_rect = bounding_rect(points)
            groups = []
            for feature in self.features:
                for chain in connection_chains(feature):
                    groups.append(tuple(relative_to(points[i], face_rect) for i in chain if i < len(points)))
            results.append(LandmarkResult(face_rect=face_rect, point_groups=tuple(g for g in groups if g)))
        return results


def connection_chains(connections) -> list[list[int]]:
    """Split a list of landmark connections into ordered index chains."""
    chains: list[list[int]] = []
    for conn in connections:
        if chains and chains[-1][-1] == conn.start:
            chains[-1].append(conn.end)
        else:
            chains.append([conn.start, conn.end])
    return chains


class HandPoseAnalyzer(_TaskAnalyzer):
    name = "mediapipe-hands"

    def __init__(self, request: DetectionRequest) -> None:
        super().__init__()
        vision, base_options = _load_vision(request.capability.value, request.option("model_path"))
        options = vision.HandLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_hands=int(request.option("max_hands", 2)),
            min_hand_detection_confidence=float(request.option("min_detection_confidence", 0.5)),
        )
        self.task = vision.HandLandmarker.create_from_options(options)

    def analyze(self, frame: Frame) -> list[SkeletonResult]:
        detected = self.task.detect(_mp_image(frame))
        results: list[SkeletonResult] = []
        handedness = detected.handedness or []
        for i, landmarks in enumerate(detected.hand_landmarks or []):
            # Hand landmarks carry no per-point visibility; use the hand score.
            score = float(handedness[i][0].score) if i < len(handedness) and handedness[i] else 1.0
            joints = {
                name: (_point(landmarks[idx]), score)
                for idx, name in enumerate(HAND_JOINTS)
                if idx < len(landmarks)
            }
            results.append(SkeletonResult(joints=joints, edges=HAND_EDGES))
        return results


class BodyPoseAnalyzer(_TaskAnalyzer):
    name = "mediapipe-pose"

    def __init__(self, request: DetectionRequest) -> None:
        super().__init__()
        vision, base_options = _load_vision(request.capability.value, request.option("model_path"))
        min_conf = float(request.option("min_detection_confidence", 0.5))
        options = vision.PoseLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_poses=int(request.option("num_poses", 1)),
            min_pose_detection_confidence=min_conf,
            min_pose_presence_confidence=min_conf,
        )
        self.task = vision.PoseLandmarker.create_from_options(options)

    def analyze(self, frame: Frame) -> list[SkeletonResult]:
        detected = self.task.detect(_mp_image(frame))
        results: list[SkeletonResult] = []
        for landmarks in detected.pose_landmarks or []:
            joints = {}
            for name, idx in BODY_LANDMARKS.items():
                lm = landmarks[idx]
                visibility = getattr(lm, "visibility", None)
                joints[name] = (_point(lm), float(visibility) if visibility is not None else 1.0)
            joints["neck"] = _midpoint(joints["left_shoulder"], joints["right_shoulder"])
            joints["root"] = _midpoint(joints["left_hip"], joints["right_hip"])
            results.append(SkeletonResult(joints=joints, edges=BODY_EDGES))
        return results
