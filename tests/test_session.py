import threading

import numpy as np
from conftest import FakeAnalyzer, FakeSource, MissingSource, make_backend, wait_until

from visionoverlay.errors import CaptureStartFailure
from visionoverlay.overlay import OverlayRenderer
from visionoverlay.session import (
    STATUS_NO_DEVICE,
    STATUS_READY,
    STATUS_RUNNING,
    STATUS_STOPPED,
    SessionController,
    SessionState,
)
from visionoverlay.types import BoundingBoxResult, Capability, Frame, Rect, Size
from visionoverlay.ui import UiDispatcher

FACE = BoundingBoxResult(rect=Rect(0.25, 0.25, 0.5, 0.5), label="Face", confidence=0.9)


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def _controller(requests, source_factory=FakeSource, analyzers=None, enabled=(Capability.FACE,), clock=None):
    analyzers = analyzers if analyzers is not None else {Capability.FACE: FakeAnalyzer([FACE])}
    state = SessionState(enabled=frozenset(enabled))
    controller = SessionController(
        state=state,
        backend=make_backend(analyzers),
        requests=requests,
        renderer=OverlayRenderer(),
        ui=UiDispatcher(),
        source_factory=source_factory,
        clock=clock or FakeClock(),
    )
    controller.ui.bind_current_thread()
    return controller


def test_initial_status_is_ready(requests):
    controller = _controller(requests)
    assert controller.state.status == STATUS_READY
    assert not controller.state.running


def test_start_then_stop(requests):
    analyzer = FakeAnalyzer([FACE])
    controller = _controller(requests, analyzers={Capability.FACE: analyzer})

    assert controller.toggle_capture() is True
    assert controller.state.status == STATUS_RUNNING
    assert controller.toggle_capture() is False
    assert controller.state.status == STATUS_STOPPED
    assert not controller.state.running

    calls_after_stop = list(analyzer.calls)
    assert controller.pipeline.offer(np.zeros((4, 4, 3), dtype=np.uint8)) is False
    assert analyzer.calls == calls_after_stop


def test_missing_camera_reports_no_device(requests):
    controller = _controller(requests, source_factory=MissingSource)

    assert controller.toggle_capture() is False
    assert controller.state.status == STATUS_NO_DEVICE
    assert not controller.state.running
    assert not controller.pipeline.running


def test_start_failure_reports_error(requests):
    controller = _controller(
        requests,
        source_factory=lambda: FakeSource(open_error=CaptureStartFailure("device busy")),
    )

    assert controller.toggle_capture() is False
    assert controller.state.status == "Error: device busy"
    assert not controller.state.running


def test_toggle_capability(requests):
    controller = _controller(requests, enabled=())

    assert controller.toggle_capability(Capability.HAND_POSE) is True
    assert controller.state.enabled == frozenset({Capability.HAND_POSE})
    assert controller.toggle_capability(Capability.HAND_POSE) is False
    assert controller.state.enabled == frozenset()


def test_fps_published_once_per_window(requests):
    clock = FakeClock(10.0)
    controller = _controller(requests, clock=clock)
    controller.tick()

    for i in range(12):
        controller.record_arrival(Frame(image=None, sequence=i + 1))
    assert controller.tick(10.5) == 0.0
    assert controller.tick(11.0) == 12.0
    assert controller.state.frames_in_window == 0
    assert controller.state.frame_counter == 12

    controller.record_arrival(Frame(image=None, sequence=13))
    assert controller.tick(12.0) == 1.0


def test_apply_results_updates_detection_count(requests):
    controller = _controller(requests)
    controller.set_surface_size(Size(800.0, 600.0))

    controller.apply_results(Capability.FACE, [FACE, FACE])
    assert controller.state.detection_count == 4

    controller.apply_results(Capability.FACE, [])
    assert controller.state.detection_count == 0


def test_worker_callbacks_only_post_messages(requests, frame):
    controller = _controller(requests)
    controller.set_surface_size(Size(800.0, 600.0))

    worker = threading.Thread(target=controller._on_frame_worker, args=(frame,))
    worker.start()
    worker.join()

    # Nothing touched until the UI thread drains.
    assert len(controller.renderer.layers[Capability.FACE]) == 0
    assert controller.ui.pending() == 1
    controller.ui.drain()
    assert len(controller.renderer.layers[Capability.FACE]) == 2


def test_frames_flow_to_overlay_end_to_end(requests):
    source = FakeSource(frames=3)
    controller = _controller(requests, source_factory=lambda: source)
    controller.set_surface_size(Size(800.0, 600.0))

    controller.toggle_capture()
    try:
        assert wait_until(
            lambda: controller.state.frame_counter == 3 and controller.state.detection_count == 2,
            tick=controller.ui.drain,
        )
    finally:
        controller.shutdown()

    assert controller.latest_frame is not None
    assert controller.latest_frame.sequence == 3
    assert source.released


def test_shutdown_clears_overlay_and_closes_backend(requests):
    analyzer = FakeAnalyzer([FACE])
    controller = _controller(requests, analyzers={Capability.FACE: analyzer})
    controller.apply_results(Capability.FACE, [FACE])

    controller.shutdown()

    assert controller.state.detection_count == 0
    assert analyzer.closed


class BlockingAnalyzer(FakeAnalyzer):
    """Holds ``analyze`` open until released and notes a close that overlaps it."""

    def __init__(self, results=None):
        super().__init__(results)
        self.started = threading.Event()
        self.release = threading.Event()
        self.closed_during_analyze = False

    def analyze(self, frame):
        self.started.set()
        self.release.wait(2.0)
        self.closed_during_analyze = self.closed
        return super().analyze(frame)


def test_shutdown_waits_for_in_flight_batch(requests):
    analyzer = BlockingAnalyzer([FACE])
    controller = _controller(
        requests,
        source_factory=lambda: FakeSource(frames=1),
        analyzers={Capability.FACE: analyzer},
    )
    controller.toggle_capture()
    assert analyzer.started.wait(2.0)

    releaser = threading.Timer(0.1, analyzer.release.set)
    releaser.start()
    try:
        controller.shutdown()
    finally:
        analyzer.release.set()
        releaser.join()

    assert analyzer.calls == [1]
    assert not analyzer.closed_during_analyze
    assert analyzer.closed


def test_ui_state_rejects_other_threads(requests, frame):
    controller = _controller(requests)
    errors = []

    def from_worker():
        for call in (
            lambda: controller.apply_results(Capability.FACE, [FACE]),
            lambda: controller.record_arrival(frame),
        ):
            try:
                call()
            except RuntimeError as e:
                errors.append(str(e))

    worker = threading.Thread(target=from_worker)
    worker.start()
    worker.join()

    assert errors == [
        "apply_results must run on the UI thread",
        "record_arrival must run on the UI thread",
    ]
    assert controller.state.frame_counter == 0
    assert len(controller.renderer.layers[Capability.FACE]) == 0
