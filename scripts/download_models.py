#!/usr/bin/env python3
from __future__ import annotations

from pathlib import Path
import urllib.request


BASE_URL = "https://storage.googleapis.com/mediapipe-models"
MODELS = {
    "blaze_face_short_range.tflite": f"{BASE_URL}/face_detector/blaze_face_short_range/float16/latest/blaze_face_short_range.tflite",
    "face_landmarker.task": f"{BASE_URL}/face_landmarker/face_landmarker/float16/latest/face_landmarker.task",
    "hand_landmarker.task": f"{BASE_URL}/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task",
    "pose_landmarker_lite.task": f"{BASE_URL}/pose_landmarker/pose_landmarker_lite/float16/latest/pose_landmarker_lite.task",
}
OUT_DIR = Path("models/mediapipe")


def main() -> int:
    OUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, url in MODELS.items():
        out_path = OUT_DIR / name
        if out_path.exists():
            print(f"Already present: {out_path}")
            continue
        print(f"Downloading {name} to {out_path} ...")
        urllib.request.urlretrieve(url, out_path)
    print("Done. YOLO weights are fetched by ultralytics on first load.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
