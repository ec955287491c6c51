import pytest

from switchboard.core.error_types import ErrorType
from switchboard.core.errors import (
    ConfigurationError,
    NoRouteError,
    ProviderConnectionError,
    ProviderTimeoutError,
    RequestCancelledError,
    UnknownProviderError,
    UpstreamErrorKind,
    UpstreamHTTPError,
    user_message,
)


@pytest.mark.unit
class TestErrorTaxonomy:
    def test_error_types(self):
        assert ConfigurationError("x").error_type is ErrorType.CONFIGURATION_ERROR
        assert UnknownProviderError("ghost").error_type is ErrorType.UNKNOWN_PROVIDER
        assert NoRouteError("x").error_type is ErrorType.NO_ROUTE
        assert RequestCancelledError("x").error_type is ErrorType.CANCELLED

    def test_only_transport_errors_are_retryable(self):
        assert ProviderTimeoutError("x").retryable
        assert ProviderConnectionError("x").retryable
        assert not UpstreamHTTPError("x", status_code=503).retryable
        assert not ConfigurationError("x").retryable

    def test_unknown_provider_carries_id(self):
        error = UnknownProviderError("ghost")
        assert error.provider_id == "ghost"
        assert "ghost" in error.message


@pytest.mark.unit
class TestUserMessage:
    @pytest.mark.parametrize(
        "kind, expected",
        [
            (UpstreamErrorKind.INVALID_CREDENTIAL, "Invalid anthropic API key. Please check your API key in settings."),
            (UpstreamErrorKind.MODEL_NOT_FOUND, "Model 'claude-x' not found. Please check the model name."),
            (UpstreamErrorKind.RATE_LIMITED, "Rate limit exceeded. Please try again later."),
            (UpstreamErrorKind.GENERIC, "anthropic API request failed: 500 - overloaded"),
        ],
    )
    def test_upstream_messages(self, kind, expected):
        error = UpstreamHTTPError(
            "overloaded", status_code=500, kind=kind, provider_id="anthropic", model="claude-x"
        )
        assert user_message(error) == expected

    def test_transport_messages(self):
        assert user_message(ProviderTimeoutError("t")) == "Request timed out"
        assert "gemini" in user_message(ProviderConnectionError("c", provider_id="gemini"))

    def test_other_errors(self):
        assert user_message(ConfigurationError("Missing key")) == "Missing key"
        assert user_message(ValueError("bad")) == "bad"
        assert user_message(RuntimeError()) == "RuntimeError"
