import time

import numpy as np
import pytest

from visionoverlay.backends.base import Analyzer, PerceptionBackend
from visionoverlay.errors import DeviceUnavailable
from visionoverlay.request_table import build_requests
from visionoverlay.types import Frame


class FakeAnalyzer(Analyzer):
    name = "fake"

    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error
        self.calls = []
        self.closed = False

    def analyze(self, frame):
        self.calls.append(frame.sequence)
        if self.error is not None:
            raise self.error
        return list(self.results)

    def close(self):
        self.closed = True


class FakeSource:
    """Frame source yielding a fixed number of frames, then nothing."""

    def __init__(self, frames=0, shape=(60, 80, 3), open_error=None):
        self.remaining = frames
        self.shape = shape
        self.open_error = open_error
        self.opened = False
        self.released = False

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def read(self):
        if self.remaining <= 0:
            return False, None
        self.remaining -= 1
        return True, np.zeros(self.shape, dtype=np.uint8)

    def release(self):
        self.released = True


class MissingSource(FakeSource):
    def __init__(self):
        super().__init__(open_error=DeviceUnavailable("Could not open camera_id=0"))


def make_backend(analyzers):
    backend = PerceptionBackend()
    for capability, analyzer in analyzers.items():
        backend.register(capability, analyzer)
    return backend


def wait_until(predicate, timeout=2.0, tick=None):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if tick is not None:
            tick()
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def requests():
    return build_requests()


@pytest.fixture
def blank_image():
    return np.zeros((600, 800, 3), dtype=np.uint8)


@pytest.fixture
def frame(blank_image):
    return Frame(image=blank_image, sequence=1)
