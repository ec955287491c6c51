"""Bounded retry for transient failures."""

from dataclasses import dataclass

from switchboard.core.errors import ProviderError


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for timeout and network-class errors only.

    Off by default. A request that already delivered chunks to its caller is
    never retried, since the caller would see the text twice.
    """

    enabled: bool = False
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def attempt_limit(self, provider_retry_attempts: int | None = None) -> int:
        """Total attempts allowed; a provider's retry_attempts can only lower the cap."""
        if provider_retry_attempts is None:
            return self.max_attempts
        return min(self.max_attempts, provider_retry_attempts + 1)

    def should_retry(
        self,
        error: BaseException,
        attempts: int,
        chunks_emitted: int = 0,
        provider_retry_attempts: int | None = None,
    ) -> bool:
        return (
            self.enabled
            and isinstance(error, ProviderError)
            and error.retryable
            and chunks_emitted == 0
            and attempts < self.attempt_limit(provider_retry_attempts)
        )

    def delay_seconds(self, attempts: int) -> float:
        """Backoff before attempt number attempts + 1."""
        delay_ms = self.base_delay_ms * (2 ** max(attempts - 1, 0))
        return min(delay_ms, self.max_delay_ms) / 1000
