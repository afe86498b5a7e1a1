"""
Error taxonomy for the review core.

Configuration errors are fatal and propagate to whoever asked for
initialization. Everything else is a per-request fault that the owning
component converts into a degraded (empty) result.
"""

from typing import Optional


class ReviewerError(Exception):
    """Base exception for all reviewer errors."""
    pass


class ConfigurationError(ReviewerError):
    """
    Required configuration is missing or unusable.

    Raised when:
    - The vector index API key is not set
    - A configured provider name is not recognised
    """
    pass


class TransientServiceError(ReviewerError):
    """
    Network or service failure talking to the generation service or index.

    Raised when:
    - The service is unreachable or times out
    - The service returns an error response
    """

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message)
        self.service = service


class SerializationError(ReviewerError):
    """A tool-call payload could not be serialized to text."""
    pass


class EncoderOutputError(ReviewerError):
    """The embedding encoder returned a value of an unrecognised shape."""

    def __init__(self, message: str, output_type: Optional[str] = None):
        super().__init__(message)
        self.output_type = output_type
