"""Custom exception hierarchy for gemrelay.

All exceptions inherit from GemRelayError for easy catching at the top level.
Provider failures carry an ErrorKind assigned once, at the provider boundary,
so retry decisions never depend on message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of provider failure kinds (Google RPC status names)."""

    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    INTERNAL = "INTERNAL"
    CANCELLED = "CANCELLED"
    ABORTED = "ABORTED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    UNKNOWN = "UNKNOWN"


RETRYABLE_ERROR_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.RESOURCE_EXHAUSTED,
        ErrorKind.UNAVAILABLE,
        ErrorKind.DEADLINE_EXCEEDED,
        ErrorKind.INTERNAL,
        ErrorKind.CANCELLED,
        ErrorKind.ABORTED,
    }
)


class GemRelayError(Exception):
    """Base exception for all gemrelay errors."""


class ConfigurationError(GemRelayError):
    """Configuration-related errors, including a missing API key."""


class ProviderError(GemRelayError):
    """LLM provider errors."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


class ProviderNotFoundError(ProviderError):
    """Requested provider is not registered."""


class AuthenticationError(ProviderError):
    """The provider rejected the API key."""


class TransientProviderError(ProviderError):
    """Provider failure whose kind is on the retry allow-list."""


class FatalProviderError(ProviderError):
    """Provider failure that must not be retried."""


class RequestAbortedError(ProviderError):
    """The caller's abort signal fired before the request completed."""

    def __init__(self, message: str = "Request was aborted") -> None:
        super().__init__(message, ErrorKind.CANCELLED)


class ToolExecutionError(GemRelayError):
    """A tool requested by the model failed while executing."""


class RecordingError(GemRelayError):
    """Cassette read/write errors."""


class CassetteNotFoundError(RecordingError):
    """Replay mode was asked for a fingerprint that was never recorded."""
