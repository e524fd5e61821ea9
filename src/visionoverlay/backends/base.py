from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from visionoverlay.errors import BatchDispatchFailure
from visionoverlay.request_table import DetectionRequest
from visionoverlay.types import Capability, DetectionResult, Frame

logger = logging.getLogger(__name__)


class Analyzer:
    """Adapter around one perception model serving a single capability."""

    name = "base"

    def analyze(self, frame: Frame) -> list[DetectionResult]:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:
        return None


@dataclass
class RequestOutcome:
    request: DetectionRequest
    results: list = field(default_factory=list)
    latency_ms: float = 0.0

    @property
    def capability(self) -> Capability:
        return self.request.capability


class PerceptionBackend:
    """Runs a batch of configured requests against one frame.

    Analyzers registered for dispatch are keyed by capability. Reserved
    analyzers are loaded and held but never run by ``run_batch``.
    """

    def __init__(self) -> None:
        self._analyzers: dict[Capability, Analyzer] = {}
        self._reserved: dict[str, Analyzer] = {}

    def register(self, capability: Capability, analyzer: Analyzer) -> None:
        self._analyzers[capability] = analyzer

    def reserve(self, key: str, analyzer: Analyzer) -> None:
        self._reserved[key] = analyzer

    @property
    def available(self) -> frozenset[Capability]:
        return frozenset(self._analyzers)

    @property
    def reserved_models(self) -> frozenset[str]:
        return frozenset(self._reserved)

    def run_batch(self, frame: Frame, requests: Sequence[DetectionRequest]) -> list[RequestOutcome]:
        """Run every request in order and block until all complete.

        The first failing request aborts the batch with ``BatchDispatchFailure``.
        """
        outcomes: list[RequestOutcome] = []
        for request in requests:
            analyzer = self._analyzers.get(request.capability)
            if analyzer is None:
                raise BatchDispatchFailure(
                    frame.sequence,
                    request.capability.value,
                    LookupError("no analyzer registered"),
                )
            t0 = time.perf_counter()
            try:
                results = analyzer.analyze(frame)
            except Exception as e:
                raise BatchDispatchFailure(frame.sequence, request.capability.value, e) from e
            latency_ms = (time.perf_counter() - t0) * 1000.0
            outcomes.append(RequestOutcome(request=request, results=list(results or []), latency_ms=latency_ms))
        return outcomes

    def close(self) -> None:
        for analyzer in [*self._analyzers.values(), *self._reserved.values()]:
            try:
                analyzer.close()
            except Exception:
                logger.exception("Failed to close analyzer %s", analyzer.name)
        self._analyzers.clear()
        self._reserved.clear()
