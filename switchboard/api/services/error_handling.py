"""Error handling services for API endpoints."""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi.responses import JSONResponse

from switchboard.core.error_types import ErrorType
from switchboard.core.errors import ProviderError, user_message

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    ErrorType.CONFIGURATION_ERROR: 400,
    ErrorType.UNKNOWN_PROVIDER: 404,
    ErrorType.NO_ROUTE: 503,
    ErrorType.CANCELLED: 503,
    ErrorType.UPSTREAM_TIMEOUT: 504,
    ErrorType.NETWORK_ERROR: 502,
    ErrorType.UPSTREAM_HTTP_ERROR: 502,
    ErrorType.AUTH_ERROR: 401,
    ErrorType.MODEL_NOT_FOUND: 404,
    ErrorType.RATE_LIMIT: 429,
    ErrorType.STREAMING_ERROR: 502,
    ErrorType.UNEXPECTED_ERROR: 500,
}


def error_body(error_type: str, message: str, details: Any | None = None) -> dict[str, Any]:
    content: dict[str, Any] = {"type": "error", "error": {"type": error_type, "message": message}}
    if details is not None:
        content["error"]["details"] = details
    return content


@dataclass(frozen=True, slots=True)
class ErrorResponseBuilder:
    """Centralized builder for consistent error responses across all endpoints.

    Error response format:
    {
        "type": "error",
        "error": {
            "type": "<error_type>",
            "message": "<error_message>"
        }
    }
    """

    @staticmethod
    def not_found(resource: str, identifier: str) -> JSONResponse:
        """Build a 404 Not Found error response.

        Args:
            resource: The type of resource that was not found (e.g., "Request", "Stream")
            identifier: The specific identifier that was not found
        """
        return JSONResponse(
            status_code=404,
            content=error_body("not_found", f"{resource} '{identifier}' not found"),
        )

    @staticmethod
    def invalid_parameter(name: str, reason: str, value: Any | None = None) -> JSONResponse:
        """Build a 400 Bad Request error response for invalid parameters."""
        message = f"Invalid parameter '{name}': {reason}"
        if value is not None:
            message += f" (got: {value!r})"
        return JSONResponse(status_code=400, content=error_body("invalid_parameter", message))

    @staticmethod
    def from_provider_error(error: ProviderError) -> JSONResponse:
        """Build a response for a typed switchboard error.

        The status code follows the error type; the message is the
        user-facing rendering of the error.
        """
        status_code = _STATUS_CODES.get(error.error_type, 500)
        if status_code >= 500:
            logger.warning(f"Request failed ({error.error_type.value}): {error.message}")
        details = {"provider_id": error.provider_id} if error.provider_id else None
        return JSONResponse(
            status_code=status_code,
            content=error_body(error.error_type.value, user_message(error), details),
        )

    @staticmethod
    def internal_error(
        message: str, error_type: str = "internal_error", details: Any | None = None
    ) -> JSONResponse:
        """Build a 500 Internal Server Error response."""
        return JSONResponse(status_code=500, content=error_body(error_type, message, details))
