"""Perception backend adapters.

Model-specific adapters import their libraries lazily through ``factory``.
"""

from .base import Analyzer, PerceptionBackend, RequestOutcome
from .factory import LoadReport, build_backend

__all__ = [
    "Analyzer",
    "PerceptionBackend",
    "RequestOutcome",
    "LoadReport",
    "build_backend",
]
