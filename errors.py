"""
Exception types raised by the ingestion, diff and generation stages.
"""
from typing import Optional


class ParseError(ValueError):
    """Malformed or unusable input document. The request fails with a message and detail."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class DiffComputationError(RuntimeError):
    """Diffing failed unexpectedly. Callers degrade to an all-added diff."""


class GenerationOverflow(Exception):
    """The Cartesian product exceeds the generation threshold."""

    def __init__(self, threshold: int):
        super().__init__(f"Cartesian product exceeds threshold {threshold}")
        self.threshold = threshold


class ReductionCapReached(Exception):
    """The reducer hit its cap before every candidate was kept."""

    def __init__(self, cap: int, dropped: int):
        super().__init__(f"Reduction cap {cap} reached; {dropped} test case(s) dropped")
        self.cap = cap
        self.dropped = dropped
