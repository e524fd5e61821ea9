from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Protocol

import numpy as np

from visionoverlay.types import Frame

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def open(self) -> None: ...

    def read(self) -> tuple[bool, np.ndarray | None]: ...

    def release(self) -> None: ...


class CapturePipeline:
    """Pulls frames from a source and hands them to a single detection worker.

    A reader thread pulls frames at the source's own rate. Each frame is
    counted on arrival through ``on_arrival``, then either handed to the
    worker or dropped if the worker is still busy with the previous frame.
    Frames are never queued, so latency stays bounded to one frame.
    """

    def __init__(
        self,
        source_factory: Callable[[], FrameSource],
        on_frame: Callable[[Frame], None],
        on_arrival: Callable[[Frame], None] | None = None,
        read_retry_delay: float = 0.01,
    ) -> None:
        self.source_factory = source_factory
        self.on_frame = on_frame
        self.on_arrival = on_arrival
        self.read_retry_delay = read_retry_delay

        self._source: FrameSource | None = None
        self._reader: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._stop = threading.Event()
        self._busy = threading.Event()
        self._lock = threading.Lock()
        self._sequence = 0

        self.delivered_frames = 0
        self.dropped_frames = 0

    @property
    def running(self) -> bool:
        return self._reader is not None

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def start(self) -> None:
        """Open the source and start pulling frames.

        Raises ``DeviceUnavailable`` or ``CaptureStartFailure`` from the source;
        the pipeline stays stopped in that case.
        """
        if self.running:
            return

        source = self.source_factory()
        source.open()

        # Each reader gets its own stop event so a reader that outlives a
        # timed-out join never resumes after a restart.
        stop = threading.Event()
        self._source = source
        self._stop = stop
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detection")
        self._reader = threading.Thread(target=self._read_loop, args=(source, stop), name="capture", daemon=True)
        self._reader.start()
        logger.info("Capture started")

    def stop(self, timeout: float = 2.0, wait: bool = False) -> None:
        """Stop pulling frames. Work already handed to the worker runs to completion.

        With ``wait`` the call blocks until that work has finished.
        """
        if not self.running:
            return

        self._stop.set()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=timeout)
            if reader.is_alive():
                logger.warning("Capture reader did not exit within %.1fs", timeout)
        self._reader = None

        if self._source is not None:
            self._source.release()
            self._source = None
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
        logger.info(
            "Capture stopped (delivered=%d dropped=%d)",
            self.delivered_frames,
            self.dropped_frames,
        )

    def offer(self, image: np.ndarray) -> bool:
        """Count a newly arrived frame and hand it to the worker unless it is busy."""
        with self._lock:
            if self._stop.is_set() or self._executor is None:
                return False
            self._sequence += 1
            frame = Frame(image=image, sequence=self._sequence, timestamp=time.monotonic())

            if self.on_arrival is not None:
                self.on_arrival(frame)

            if self._busy.is_set():
                self.dropped_frames += 1
                logger.debug("Dropping frame %d: detection still busy", frame.sequence)
                return False

            self._busy.set()
            self.delivered_frames += 1
            self._executor.submit(self._process, frame)
            return True

    def _process(self, frame: Frame) -> None:
        try:
            self.on_frame(frame)
        except Exception:
            logger.exception("Frame %d processing failed", frame.sequence)
        finally:
            self._busy.clear()

    def _read_loop(self, source: FrameSource, stop: threading.Event) -> None:
        while not stop.is_set():
            ok, image = source.read()
            if stop.is_set():
                break
            if not ok or image is None:
                time.sleep(self.read_retry_delay)
                continue
            self.offer(image)
