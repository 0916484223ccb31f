"""
Exception types raised inside the pipeline.

Everything below ConfigurationError is a per-image or per-store condition that
the orchestrator absorbs as a skip.
"""


class ChirashiError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(ChirashiError):
    """Missing credentials or invalid run configuration. Fatal."""


class ImageFetchError(ChirashiError):
    """Image could not be downloaded."""


class ImageNormalizeError(ChirashiError):
    """Downloaded bytes could not be decoded or re-encoded."""


class ExtractionError(ChirashiError):
    """Gemini call failed, either immediately or after exhausting retries."""

    def __init__(self, message: str, retryable: bool = False, attempts: int = 1):
        super().__init__(message)
        self.retryable = retryable
        self.attempts = attempts
