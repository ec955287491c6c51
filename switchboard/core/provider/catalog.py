"""Built-in provider catalog: the five vendors the switchboard ships with."""

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass

from switchboard.clients.anthropic_client import ANTHROPIC_DEFAULT_CONFIG, AnthropicClient
from switchboard.clients.base import ProviderClient
from switchboard.clients.deepseek_client import DEEPSEEK_DEFAULT_CONFIG, DeepSeekClient
from switchboard.clients.gemini_client import GEMINI_DEFAULT_CONFIG, GeminiClient
from switchboard.clients.lmstudio_client import LMSTUDIO_DEFAULT_CONFIG, LMStudioClient
from switchboard.clients.openai_client import OPENAI_DEFAULT_CONFIG, OpenAIClient
from switchboard.core.provider.provider_registry import ProviderMetadata, ProviderRegistry
from switchboard.core.provider_config import ProviderConfig


@dataclass(frozen=True)
class CatalogEntry:
    provider_id: str
    client_class: Callable[..., ProviderClient]
    default_config: ProviderConfig
    metadata: ProviderMetadata


BUILTIN_PROVIDERS = (
    CatalogEntry(
        provider_id="openai",
        client_class=OpenAIClient,
        default_config=OPENAI_DEFAULT_CONFIG,
        metadata=ProviderMetadata(
            name="OpenAI",
            description="GPT models via the OpenAI API",
            tags=("hosted", "vision", "function-calling"),
            support_level="official",
            homepage="https://platform.openai.com",
        ),
    ),
    CatalogEntry(
        provider_id="anthropic",
        client_class=AnthropicClient,
        default_config=ANTHROPIC_DEFAULT_CONFIG,
        metadata=ProviderMetadata(
            name="Anthropic",
            description="Claude models via the Messages API",
            tags=("hosted", "vision", "reasoning"),
            support_level="official",
            homepage="https://console.anthropic.com",
        ),
    ),
    CatalogEntry(
        provider_id="deepseek",
        client_class=DeepSeekClient,
        default_config=DEEPSEEK_DEFAULT_CONFIG,
        metadata=ProviderMetadata(
            name="DeepSeek",
            description="DeepSeek chat and reasoning models",
            tags=("hosted", "reasoning"),
            support_level="official",
            homepage="https://platform.deepseek.com",
        ),
    ),
    CatalogEntry(
        provider_id="gemini",
        client_class=GeminiClient,
        default_config=GEMINI_DEFAULT_CONFIG,
        metadata=ProviderMetadata(
            name="Google Gemini",
            description="Gemini models via the Generative Language API",
            tags=("hosted", "vision", "long-context"),
            support_level="official",
            homepage="https://aistudio.google.com",
        ),
    ),
    CatalogEntry(
        provider_id="lmstudio",
        client_class=LMStudioClient,
        default_config=LMSTUDIO_DEFAULT_CONFIG,
        metadata=ProviderMetadata(
            name="LM Studio",
            description="Local models served by LM Studio",
            tags=("local", "free"),
            support_level="community",
            homepage="https://lmstudio.ai",
        ),
    ),
)


def register_builtin_providers(
    registry: ProviderRegistry,
    *,
    request_timeout_ms: int | None = None,
    probe_timeout_ms: int = 10000,
) -> None:
    """Register every built-in provider on registry.

    request_timeout_ms, when given, replaces the hosted vendors' default
    timeout; LM Studio keeps its shorter local default.
    """
    for entry in BUILTIN_PROVIDERS:
        default_config = entry.default_config
        if request_timeout_ms is not None and entry.provider_id != "lmstudio":
            default_config = dataclasses.replace(default_config, timeout_ms=request_timeout_ms)

        def factory(config: ProviderConfig, client_class=entry.client_class) -> ProviderClient:
            return client_class(config, probe_timeout_ms=probe_timeout_ms)

        registry.register(entry.provider_id, factory, default_config, entry.metadata)
