import pytest

from visionoverlay import camera
from visionoverlay.camera import CameraDevice, _pick_best_match, parse_avfoundation_devices, resolve_camera_id
from visionoverlay.errors import DeviceUnavailable

FFMPEG_OUTPUT = """\
[AVFoundation indev @ 0x7f] AVFoundation video devices:
[AVFoundation indev @ 0x7f] [0] FaceTime HD Camera
[AVFoundation indev @ 0x7f] [1] USB Camera
[AVFoundation indev @ 0x7f] [2] Capture screen 0
[AVFoundation indev @ 0x7f] AVFoundation audio devices:
[AVFoundation indev @ 0x7f] [0] MacBook Pro Microphone
"""


def test_parse_video_devices_only():
    devices = parse_avfoundation_devices(FFMPEG_OUTPUT)
    assert devices == [
        CameraDevice(0, "FaceTime HD Camera"),
        CameraDevice(1, "USB Camera"),
        CameraDevice(2, "Capture screen 0"),
    ]


def test_best_match_prefers_exact_name():
    devices = parse_avfoundation_devices(FFMPEG_OUTPUT)
    assert _pick_best_match("usb camera", devices) == 1
    assert _pick_best_match("FaceTime", devices) == 0


def test_tie_goes_to_lower_index():
    devices = [CameraDevice(3, "Camera"), CameraDevice(1, "Camera")]
    assert _pick_best_match("camera", devices) == 1


def test_no_match():
    assert _pick_best_match("webcam", [CameraDevice(0, "Screen")]) is None
    assert _pick_best_match("webcam", []) is None


def test_resolve_without_name_keeps_id():
    assert resolve_camera_id(4, None) == 4


def test_resolve_unknown_name_raises(monkeypatch):
    monkeypatch.setattr(camera, "list_cameras_avfoundation", lambda: [CameraDevice(0, "Screen")])
    with pytest.raises(DeviceUnavailable, match="not found"):
        resolve_camera_id(0, "Logitech Brio")


def test_resolve_known_name(monkeypatch):
    monkeypatch.setattr(camera, "list_cameras_avfoundation", lambda: parse_avfoundation_devices(FFMPEG_OUTPUT))
    assert resolve_camera_id(0, "USB Camera") == 1
