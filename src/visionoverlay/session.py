from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from visionoverlay.backends.base import PerceptionBackend
from visionoverlay.capture import CapturePipeline
from visionoverlay.dispatcher import DetectionDispatcher
from visionoverlay.errors import CaptureStartFailure, DeviceUnavailable
from visionoverlay.overlay import OverlayRenderer
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import Capability, Frame, Size
from visionoverlay.ui import UiDispatcher

logger = logging.getLogger(__name__)

STATUS_READY = "Ready"
STATUS_RUNNING = "Camera running"
STATUS_STOPPED = "Camera stopped"
STATUS_NO_DEVICE = "No camera available"
FPS_WINDOW_SECONDS = 1.0


@dataclass
class SessionState:
    """UI-owned session fields. Only the UI thread writes these."""

    enabled: frozenset[Capability] = field(default_factory=frozenset)
    running: bool = False
    frame_counter: int = 0
    frames_in_window: int = 0
    fps: float = 0.0
    detection_count: int = 0
    status: str = STATUS_READY
    surface_size: Size = Size(1280.0, 720.0)
    window_start: float | None = None


class SessionController:
    """Start/stop lifecycle, capability toggles and FPS bookkeeping.

    Wires the pipeline to the dispatcher and routes results back through the UI
    message queue, so every method here runs on the UI thread except the
    callbacks named ``_on_*_worker``.
    """

    def __init__(
        self,
        state: SessionState,
        backend: PerceptionBackend,
        requests: Mapping[Capability, DetectionRequest],
        renderer: OverlayRenderer,
        ui: UiDispatcher,
        source_factory: Callable,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state
        self.dispatcher = DetectionDispatcher(backend, requests, self._on_results_worker)
        self.renderer = renderer
        self.ui = ui
        self.clock = clock
        self.latest_frame: Frame | None = None

        self.pipeline = CapturePipeline(
            source_factory=source_factory,
            on_frame=self._on_frame_worker,
            on_arrival=self._on_arrival_worker,
        )

    # ---- UI-thread API ----
    def toggle_capture(self) -> bool:
        """Start if stopped, stop if running. Returns the new running flag."""
        if self.state.running:
            self.pipeline.stop()
            self.state.running = False
            self.set_status(STATUS_STOPPED)
            return False

        try:
            self.pipeline.start()
        except DeviceUnavailable as e:
            logger.warning("%s", e)
            self.set_status(STATUS_NO_DEVICE)
            return False
        except CaptureStartFailure as e:
            logger.error("Capture start failed: %s", e)
            self.set_status(f"Error: {e}")
            return False

        self.state.running = True
        self.state.window_start = self.clock()
        self.state.frames_in_window = 0
        self.set_status(STATUS_RUNNING)
        return True

    def set_capability_enabled(self, capability: Capability, enabled: bool) -> None:
        current = set(self.state.enabled)
        if enabled:
            current.add(capability)
        else:
            current.discard(capability)
        # Rebinding keeps the worker's snapshot read consistent.
        self.state.enabled = frozenset(current)
        logger.info("%s %s", capability.value, "enabled" if enabled else "disabled")

    def toggle_capability(self, capability: Capability) -> bool:
        enabled = capability not in self.state.enabled
        self.set_capability_enabled(capability, enabled)
        return enabled

    def set_status(self, message: str) -> None:
        self.state.status = message

    def set_surface_size(self, size: Size) -> None:
        self.state.surface_size = size

    def tick(self, now: float | None = None) -> float:
        """Publish FPS once per wall-clock second: frames arrived in the window."""
        now = self.clock() if now is None else now
        if self.state.window_start is None:
            self.state.window_start = now
            return self.state.fps
        if now - self.state.window_start >= FPS_WINDOW_SECONDS:
            self.state.fps = float(self.state.frames_in_window)
            self.state.frames_in_window = 0
            self.state.window_start = now
        return self.state.fps

    def record_arrival(self, frame: Frame) -> None:
        self._require_ui_thread("record_arrival")
        self.state.frame_counter += 1
        self.state.frames_in_window += 1
        self.latest_frame = frame

    def apply_results(self, capability: Capability, results: list) -> None:
        self._require_ui_thread("apply_results")
        self.state.detection_count = self.renderer.render(capability, results, self.state.surface_size)

    def shutdown(self) -> None:
        # The backend is closed below, so the in-flight batch must finish first.
        self.pipeline.stop(wait=True)
        self.state.running = False
        self.ui.drain()
        self.renderer.clear_all()
        self.state.detection_count = 0
        self.dispatcher.backend.close()

    def _require_ui_thread(self, action: str) -> None:
        if not self.ui.is_ui_thread():
            raise RuntimeError(f"{action} must run on the UI thread")

    # ---- worker-thread callbacks: only post messages ----
    def _on_arrival_worker(self, frame: Frame) -> None:
        self.ui.post(self.record_arrival, frame)

    def _on_frame_worker(self, frame: Frame) -> None:
        self.dispatcher.dispatch(frame, self.state.enabled)

    def _on_results_worker(self, capability: Capability, results: list) -> None:
        self.ui.post(self.apply_results, capability, results)
