import pytest

from switchboard.core.errors import ProviderConnectionError, ProviderTimeoutError, UpstreamHTTPError
from switchboard.orchestrator import RetryPolicy


@pytest.mark.unit
class TestRetryPolicy:
    def test_disabled_by_default(self):
        assert not RetryPolicy().should_retry(ProviderTimeoutError("slow"), 1)

    def test_only_transient_errors(self):
        policy = RetryPolicy(enabled=True)
        assert policy.should_retry(ProviderTimeoutError("slow"), 1)
        assert policy.should_retry(ProviderConnectionError("reset"), 2)
        assert not policy.should_retry(UpstreamHTTPError("boom", status_code=500), 1)
        assert not policy.should_retry(ValueError("bug"), 1)

    def test_attempt_limit_and_chunks(self):
        policy = RetryPolicy(enabled=True, max_attempts=3)
        assert not policy.should_retry(ProviderTimeoutError("slow"), 3)
        assert not policy.should_retry(ProviderTimeoutError("slow"), 1, chunks_emitted=2)

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(enabled=True, base_delay_ms=1000, max_delay_ms=3000)
        assert [policy.delay_seconds(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    def test_provider_retry_attempts_lower_the_limit(self):
        policy = RetryPolicy(enabled=True, max_attempts=3)
        assert policy.attempt_limit() == 3
        assert policy.attempt_limit(0) == 1
        assert policy.attempt_limit(1) == 2
        assert policy.attempt_limit(10) == 3
        assert not policy.should_retry(ProviderTimeoutError("slow"), 1, provider_retry_attempts=0)
        assert policy.should_retry(ProviderTimeoutError("slow"), 1, provider_retry_attempts=1)
