"""Error type enumeration for the switchboard.

Provides type-safe error categorization for events, request records and
error responses.
"""

from enum import Enum


class ErrorType(str, Enum):
    """Error type categories for events and error responses.

    These error types are used throughout the codebase for:
    - RequestRecord.error_type field
    - request:failed event payloads
    - HTTP error responses (type field)

    When adding new error types:
    1. Add the enum value here
    2. Map it to a status code in ErrorResponseBuilder.from_provider_error
    3. Document when the error type is used
    """

    # Routing errors
    CONFIGURATION_ERROR = "configuration_error"  # Missing credential or invalid config key
    UNKNOWN_PROVIDER = "unknown_provider"  # Provider id was never registered
    NO_ROUTE = "no_route"  # No live provider satisfies the request

    # Request lifecycle errors
    CANCELLED = "cancelled"  # Request cancelled on shutdown
    UPSTREAM_TIMEOUT = "upstream_timeout"  # Upstream provider timeout
    NETWORK_ERROR = "network_error"  # Connection refused, DNS failure, reset

    # HTTP/API errors
    UPSTREAM_HTTP_ERROR = "upstream_http_error"  # Upstream HTTP error without a specific kind
    AUTH_ERROR = "auth_error"  # Upstream rejected the credential
    MODEL_NOT_FOUND = "model_not_found"  # Upstream does not know the model
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded

    # Streaming errors
    STREAMING_ERROR = "streaming_error"  # Malformed stream record

    # Catch-all
    UNEXPECTED_ERROR = "unexpected_error"  # Unhandled/unexpected error
