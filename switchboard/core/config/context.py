"""Config builders for tests and embedding hosts."""

import dataclasses
import os
from collections.abc import Generator, Mapping, MutableMapping
from contextlib import contextmanager

from switchboard.core.config.config import Config

# Env prefixes read by ProviderConfigLoader for the built-in providers.
PROVIDER_ENV_PREFIXES = ("OPENAI_", "ANTHROPIC_", "DEEPSEEK_", "GEMINI_", "LMSTUDIO_")


def scrub_provider_environment(environ: MutableMapping[str, str] = os.environ) -> list[str]:
    """Remove every provider credential/override variable; returns the removed names."""
    removed = [key for key in environ if key.startswith(PROVIDER_ENV_PREFIXES)]
    for key in removed:
        environ.pop(key, None)
    return removed


@contextmanager
def temporary_config(
    env_overrides: Mapping[str, str] | None = None,
    clear_providers: bool = True,
) -> Generator[Config, None, None]:
    """Load a Config from a patched environment, restoring it on exit.

    With clear_providers the host's provider keys and base URLs are hidden,
    so a developer's OPENAI_API_KEY never leaks into a test.

    Example:
        with temporary_config({"SWB_MAX_CONCURRENT_REQUESTS": "1"}) as config:
            assert config.max_concurrent_requests == 1
    """
    saved = os.environ.copy()
    try:
        if clear_providers:
            scrub_provider_environment()
        os.environ.update(env_overrides or {})
        yield Config.load()
    finally:
        os.environ.clear()
        os.environ.update(saved)


@contextmanager
def mock_config(**overrides: str | int | float | bool) -> Generator[Config, None, None]:
    """Config.load() with fields replaced directly; unknown fields raise TypeError."""
    yield dataclasses.replace(Config.load(), **overrides)
