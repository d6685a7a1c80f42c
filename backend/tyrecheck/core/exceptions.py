"""Exception hierarchy for the tyre analysis pipeline.

Every failure the pipeline can surface derives from ``AnalysisError`` and
carries a stable ``classification`` string that the HTTP layer maps to a
status code and callers can switch on.
"""
from typing import Optional


class AnalysisError(Exception):
    """Base exception for analysis pipeline failures."""

    classification = "analysis"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(AnalysisError):
    """Raised for ill-formed requests, detected before any dispatch."""

    classification = "input"


class PayloadTooLargeError(InputError):
    """Raised when media exceeds the size ceiling for its kind."""

    classification = "payload_too_large"

    def __init__(self, kind: str, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"{kind} payload is {size_bytes / (1024 * 1024):.2f}MB, "
            f"exceeds limit of {limit_bytes / (1024 * 1024):.2f}MB"
        )
        self.kind = kind
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class EmptyVideoError(AnalysisError):
    """Raised when a video is shorter than one second."""

    classification = "empty_video"


class DecodeError(AnalysisError):
    """Raised when a media asset cannot be opened or decoded as video."""

    classification = "decode"


class AnalysisTimeoutError(AnalysisError, TimeoutError):
    """Raised when the analysis backend misses its deadline."""

    classification = "timeout"

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Analysis backend did not respond within {timeout_seconds:g} seconds")
        self.timeout_seconds = timeout_seconds


class UpstreamError(AnalysisError):
    """Raised for transport errors, API errors and malformed envelopes."""

    classification = "upstream"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class NoJsonFoundError(AnalysisError):
    """Raised when the backend reply contains no JSON object."""

    classification = "no_json"


class SchemaError(AnalysisError):
    """Raised when the reply does not match the view's expected shape."""

    classification = "schema"

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid analysis response at '{field}': {reason}")
        self.field = field
        self.reason = reason
