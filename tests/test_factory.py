from conftest import FakeAnalyzer

from visionoverlay.backends.factory import FAST_OBJECT_MODEL, LoadReport, build_backend
from visionoverlay.errors import ModelLoadFailure
from visionoverlay.types import Capability


def _builder(failing=(), broken=()):
    built = {}

    def build(request):
        if request.capability in failing:
            raise ModelLoadFailure(request.capability.value, "model file missing")
        if request.capability in broken:
            raise RuntimeError("unexpected")
        built[request.capability] = FakeAnalyzer()
        return built[request.capability]

    return build, built


def test_failed_loads_leave_capability_unavailable(requests):
    build, _ = _builder(failing={Capability.HAND_POSE}, broken={Capability.CONTOURS})

    backend, report = build_backend(requests, analyzer_builder=build, fallback_builder=None)

    assert Capability.HAND_POSE not in backend.available
    assert Capability.CONTOURS not in backend.available
    assert Capability.FACE in backend.available
    assert report.failed[Capability.HAND_POSE] == "model file missing"
    assert report.failed[Capability.CONTOURS] == "unexpected"
    assert len(report.loaded) == len(Capability) - 2


def test_only_wanted_capabilities_load(requests):
    build, built = _builder()

    backend, report = build_backend(
        requests,
        capabilities=frozenset({Capability.FACE}),
        analyzer_builder=build,
        fallback_builder=None,
    )

    assert set(built) == {Capability.FACE}
    assert backend.available == frozenset({Capability.FACE})
    assert report.reserved == []


def test_fast_object_model_reserved_not_available(requests):
    build, _ = _builder()
    fast = FakeAnalyzer()

    backend, report = build_backend(requests, analyzer_builder=build, fallback_builder=lambda r: fast)

    assert backend.reserved_models == frozenset({FAST_OBJECT_MODEL})
    assert report.reserved == [FAST_OBJECT_MODEL]
    assert backend.available == frozenset(Capability)

    backend.close()
    assert fast.closed


def test_fast_model_skipped_when_primary_failed(requests):
    build, _ = _builder(failing={Capability.OBJECT_DETECTION})
    calls = []

    backend, report = build_backend(requests, analyzer_builder=build, fallback_builder=calls.append)

    assert calls == []
    assert backend.reserved_models == frozenset()


def test_fast_model_load_failure_is_not_fatal(requests):
    build, _ = _builder()

    def failing_fast(request):
        raise ModelLoadFailure("object_detection", "no weights")

    backend, report = build_backend(requests, analyzer_builder=build, fallback_builder=failing_fast)

    assert Capability.OBJECT_DETECTION in backend.available
    assert report.reserved == []


def test_report_status_text():
    assert LoadReport().status() == "No models configured"
    report = LoadReport(loaded=[Capability.FACE], failed={Capability.CONTOURS: "boom"})
    assert report.status() == "Loaded: face; Unavailable: contours"
