from __future__ import annotations


class VisionOverlayError(Exception):
    """Base class for recoverable overlay errors."""


class DeviceUnavailable(VisionOverlayError):
    """No capture device could be found."""


class CaptureStartFailure(VisionOverlayError):
    """The capture device exists but acquiring it raised."""


class ModelLoadFailure(VisionOverlayError):
    """A perception model could not be loaded; its capability stays unavailable."""

    def __init__(self, capability: str, reason: str) -> None:
        super().__init__(f"{capability}: {reason}")
        self.capability = capability
        self.reason = reason


class BatchDispatchFailure(VisionOverlayError):
    """The perception backend failed while processing a frame."""

    def __init__(self, sequence: int, capability: str, cause: BaseException) -> None:
        super().__init__(f"frame {sequence}: {capability} request failed: {cause}")
        self.sequence = sequence
        self.capability = capability
        self.cause = cause


class MissingResultData(VisionOverlayError):
    """A result does not match the kind its request is declared to produce."""
