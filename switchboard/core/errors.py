"""Typed error taxonomy for provider routing and execution.

Every failure that crosses a component boundary is one of the classes below.
Callers branch on the class (or on ``error_type``), never on message text.
"""

from enum import Enum

from switchboard.core.error_types import ErrorType


class UpstreamErrorKind(str, Enum):
    """Classification of a non-success HTTP status returned by a vendor."""

    INVALID_CREDENTIAL = "invalid_credential"
    MODEL_NOT_FOUND = "model_not_found"
    RATE_LIMITED = "rate_limited"
    GENERIC = "generic"


class ProviderError(Exception):
    """Base class for every error raised by the switchboard core."""

    error_type: ErrorType = ErrorType.UNEXPECTED_ERROR
    retryable: bool = False

    def __init__(self, message: str, *, provider_id: str | None = None) -> None:
        self.message = message
        self.provider_id = provider_id
        super().__init__(message)


class ConfigurationError(ProviderError):
    """Missing credential, invalid config key, or a provider that is not ready."""

    error_type = ErrorType.CONFIGURATION_ERROR


class UnknownProviderError(ProviderError):
    """An operation referenced a provider id that was never registered."""

    error_type = ErrorType.UNKNOWN_PROVIDER

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider '{provider_id}' is not registered", provider_id=provider_id)


class NoRouteError(ProviderError):
    """No live provider satisfies the request's requirements."""

    error_type = ErrorType.NO_ROUTE


class UpstreamHTTPError(ProviderError):
    """A vendor answered with a non-success HTTP status."""

    _ERROR_TYPES = {
        UpstreamErrorKind.INVALID_CREDENTIAL: ErrorType.AUTH_ERROR,
        UpstreamErrorKind.MODEL_NOT_FOUND: ErrorType.MODEL_NOT_FOUND,
        UpstreamErrorKind.RATE_LIMITED: ErrorType.RATE_LIMIT,
        UpstreamErrorKind.GENERIC: ErrorType.UPSTREAM_HTTP_ERROR,
    }

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        kind: UpstreamErrorKind = UpstreamErrorKind.GENERIC,
        provider_id: str | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(message, provider_id=provider_id)
        self.status_code = status_code
        self.kind = kind
        self.model = model
        self.error_type = self._ERROR_TYPES[kind]


class ProviderTimeoutError(ProviderError):
    """The vendor did not answer within the configured timeout."""

    error_type = ErrorType.UPSTREAM_TIMEOUT
    retryable = True


class ProviderConnectionError(ProviderError):
    """Network-class transport failure (refused, reset, DNS)."""

    error_type = ErrorType.NETWORK_ERROR
    retryable = True


class StreamParseError(ProviderError):
    """A single stream record could not be decoded.

    Recovered locally by the stream parsers: the record is skipped and the
    stream continues.
    """

    error_type = ErrorType.STREAMING_ERROR


class RequestCancelledError(ProviderError):
    """A queued or running request was abandoned during shutdown."""

    error_type = ErrorType.CANCELLED


def user_message(error: BaseException) -> str:
    """Render an error as a human-readable message for end users."""
    if isinstance(error, UpstreamHTTPError):
        provider = error.provider_id or "provider"
        if error.kind is UpstreamErrorKind.INVALID_CREDENTIAL:
            return f"Invalid {provider} API key. Please check your API key in settings."
        if error.kind is UpstreamErrorKind.MODEL_NOT_FOUND:
            return f"Model '{error.model or 'unknown'}' not found. Please check the model name."
        if error.kind is UpstreamErrorKind.RATE_LIMITED:
            return "Rate limit exceeded. Please try again later."
        return f"{provider} API request failed: {error.status_code} - {error.message}"
    if isinstance(error, ProviderTimeoutError):
        return "Request timed out"
    if isinstance(error, ProviderConnectionError):
        provider = error.provider_id or "the provider"
        return f"Could not connect to {provider}. Please check that the service is reachable."
    if isinstance(error, ProviderError):
        return error.message
    return str(error) or error.__class__.__name__
