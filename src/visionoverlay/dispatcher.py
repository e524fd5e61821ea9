from __future__ import annotations

import logging
from typing import Callable, Mapping

from visionoverlay.backends.base import PerceptionBackend, RequestOutcome
from visionoverlay.errors import BatchDispatchFailure, MissingResultData
from visionoverlay.request_table import DetectionRequest, select_requests
from visionoverlay.types import Capability, DetectionResult, Frame

logger = logging.getLogger(__name__)

ResultHandler = Callable[[Capability, list], None]


class DetectionDispatcher:
    """Issues the enabled requests for a frame as one batch and routes the results.

    ``on_results`` is called on the dispatching thread, once per issued request.
    Callers that touch UI state from it must marshal onto the UI thread.
    """

    def __init__(
        self,
        backend: PerceptionBackend,
        requests: Mapping[Capability, DetectionRequest],
        on_results: ResultHandler,
    ) -> None:
        self.backend = backend
        self.requests = dict(requests)
        self.on_results = on_results
        self.dispatched_frames = 0
        self.failed_frames = 0

    def plan(self, enabled: frozenset[Capability]) -> list[DetectionRequest]:
        return select_requests(self.requests, enabled, self.backend.available)

    def dispatch(self, frame: Frame, enabled: frozenset[Capability]) -> list[RequestOutcome]:
        requests = self.plan(enabled)
        if not requests:
            return []

        self.dispatched_frames += 1
        try:
            outcomes = self.backend.run_batch(frame, requests)
        except BatchDispatchFailure as e:
            self.failed_frames += 1
            logger.warning("Failed to perform requests: %s", e)
            return []

        for outcome in outcomes:
            results = self._validated(outcome)
            self.on_results(outcome.capability, results)
        return outcomes

    @staticmethod
    def _validated(outcome: RequestOutcome) -> list[DetectionResult]:
        kind = outcome.request.result_kind
        bad = next((r for r in outcome.results if not isinstance(r, kind)), None)
        if bad is not None:
            error = MissingResultData(
                f"{outcome.capability.value} expected {kind.__name__}, got {type(bad).__name__}"
            )
            logger.warning("Dropping results: %s", error)
            return []
        return list(outcome.results)
