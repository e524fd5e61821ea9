from __future__ import annotations

import logging

import cv2
import numpy as np

from visionoverlay.session import SessionController
from visionoverlay.types import Capability, Size

logger = logging.getLogger(__name__)

WINDOW_NAME = "visionoverlay"
CAPABILITY_KEYS = {ord(str(i + 1)): capability for i, capability in enumerate(Capability)}


class OverlayApp:
    """OpenCV window loop. Runs on, and owns, the UI thread."""

    def __init__(
        self,
        controller: SessionController,
        display_size: tuple[int, int] | None = None,
        window_name: str = WINDOW_NAME,
    ) -> None:
        self.controller = controller
        self.display_size = display_size
        self.window_name = window_name

    def run(self, autostart: bool = True) -> None:
        ui = self.controller.ui
        ui.bind_current_thread()
        if autostart:
            self.controller.toggle_capture()

        try:
            while True:
                ui.drain()
                self.controller.tick()

                canvas = self.compose()
                cv2.imshow(self.window_name, canvas)
                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    break
                self.handle_key(key)
        finally:
            self.controller.shutdown()
            cv2.destroyAllWindows()

    def handle_key(self, key: int) -> None:
        if key == ord(" "):
            self.controller.toggle_capture()
        elif key in CAPABILITY_KEYS:
            capability = CAPABILITY_KEYS[key]
            enabled = self.controller.toggle_capability(capability)
            logger.debug("Toggled %s -> %s", capability.value, enabled)

    def compose(self) -> np.ndarray:
        frame = self.controller.latest_frame
        if frame is None:
            w, h = self.display_size or (1280, 720)
            canvas = np.zeros((h, w, 3), dtype=np.uint8)
        elif self.display_size is not None:
            canvas = cv2.resize(frame.image, self.display_size, interpolation=cv2.INTER_LINEAR)
        else:
            canvas = frame.image.copy()

        h, w = canvas.shape[:2]
        self.controller.set_surface_size(Size(float(w), float(h)))
        self.controller.renderer.composite(canvas)
        self._draw_hud(canvas)
        return canvas

    def _draw_hud(self, canvas: np.ndarray) -> None:
        state = self.controller.state
        available = self.controller.dispatcher.backend.available
        lines = [
            (f"FPS: {state.fps:.1f}", (255, 255, 0)),
            (f"Detections: {state.detection_count}", (255, 255, 255)),
            (f"Status: {state.status}", (200, 200, 200)),
        ]
        for i, capability in enumerate(Capability):
            on = capability in state.enabled
            mark = "x" if on else " "
            suffix = "" if capability in available else " (unavailable)"
            color = (0, 255, 0) if on else (160, 160, 160)
            lines.append((f"[{i + 1}] [{mark}] {capability.display_name}{suffix}", color))
        lines.append(("space: start/stop  q: quit", (200, 200, 200)))

        for row, (text, color) in enumerate(lines):
            cv2.putText(
                canvas,
                text,
                (16, 28 + 26 * row),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.55,
                color,
                2,
            )
