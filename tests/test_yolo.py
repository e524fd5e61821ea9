import sys
import types

import numpy as np
import pytest

from visionoverlay.backends.yolo import YoloObjectAnalyzer
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.request_table import build_requests
from visionoverlay.types import BoundingBoxResult, Capability, Frame


class FakeTensor:
    def __init__(self, values):
        self.values = np.asarray(values, dtype=np.float32)

    def cpu(self):
        return self

    def numpy(self):
        return self.values


class FakeBoxes:
    def __init__(self, xyxyn, conf, cls):
        self.xyxyn = FakeTensor(xyxyn)
        self.conf = FakeTensor(conf)
        self.cls = FakeTensor(cls)

    def __len__(self):
        return len(self.conf.values)


class FakeYolo:
    boxes = None
    loaded = []

    def __init__(self, model_path):
        if model_path == "missing.pt":
            raise FileNotFoundError(model_path)
        FakeYolo.loaded.append(model_path)
        self.predict_kwargs = None

    def predict(self, **kwargs):
        self.predict_kwargs = kwargs
        return [types.SimpleNamespace(boxes=FakeYolo.boxes, names={0: "person", 15: "cat"})]


@pytest.fixture
def fake_ultralytics(monkeypatch):
    module = types.ModuleType("ultralytics")
    module.YOLO = FakeYolo
    monkeypatch.setitem(sys.modules, "ultralytics", module)
    FakeYolo.loaded = []
    FakeYolo.boxes = None
    return module


def _frame():
    return Frame(image=np.zeros((480, 640, 3), dtype=np.uint8), sequence=1)


def test_boxes_become_normalized_rects(fake_ultralytics):
    FakeYolo.boxes = FakeBoxes(
        xyxyn=[[0.1, 0.2, 0.3, 0.6], [-0.05, 0.5, 1.2, 0.9], [0.4, 0.4, 0.5, 0.5]],
        conf=[0.9, 0.75, 0.6],
        cls=[15, 0, 99],
    )
    analyzer = YoloObjectAnalyzer(min_confidence=0.3)

    results = analyzer.analyze(_frame())

    assert all(isinstance(r, BoundingBoxResult) for r in results)
    cat, person, unknown = results
    assert cat.label == "cat"
    assert cat.rect == pytest.approx((0.1, 0.2, 0.2, 0.4))
    assert cat.confidence == pytest.approx(0.9)
    # Coordinates outside the frame are clamped to [0, 1].
    assert person.rect == pytest.approx((0.0, 0.5, 1.0, 0.4))
    assert unknown.label == "Unknown"


def test_confidence_filter_is_strict(fake_ultralytics):
    FakeYolo.boxes = FakeBoxes(
        xyxyn=[[0.1, 0.1, 0.2, 0.2], [0.3, 0.3, 0.4, 0.4]],
        conf=[0.3, 0.31],
        cls=[0, 15],
    )
    analyzer = YoloObjectAnalyzer(min_confidence=0.3)

    results = analyzer.analyze(_frame())

    assert [r.label for r in results] == ["cat"]


def test_no_boxes(fake_ultralytics):
    analyzer = YoloObjectAnalyzer()
    assert analyzer.analyze(_frame()) == []

    FakeYolo.boxes = FakeBoxes(xyxyn=np.zeros((0, 4)), conf=[], cls=[])
    assert analyzer.analyze(_frame()) == []


def test_predict_uses_configured_options(fake_ultralytics):
    requests = build_requests({Capability.OBJECT_DETECTION: {"imgsz": 320, "iou_threshold": 0.5}})
    analyzer = YoloObjectAnalyzer.from_request(requests[Capability.OBJECT_DETECTION])

    analyzer.analyze(_frame())

    kwargs = analyzer.model.predict_kwargs
    assert kwargs["imgsz"] == 320
    assert kwargs["iou"] == 0.5
    assert kwargs["conf"] == 0.3
    assert kwargs["verbose"] is False


def test_fast_model_reads_fallback_path(fake_ultralytics):
    request = build_requests()[Capability.OBJECT_DETECTION]
    YoloObjectAnalyzer.from_request(request, model_key="fallback_model_path")
    assert FakeYolo.loaded == ["yolo11n.pt"]


def test_unloadable_weights_raise_model_load_failure(fake_ultralytics):
    with pytest.raises(ModelLoadFailure, match="missing.pt"):
        YoloObjectAnalyzer(model_path="missing.pt")
