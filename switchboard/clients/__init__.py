"""Vendor clients implementing the ProviderClient contract."""

from switchboard.clients.anthropic_client import AnthropicClient
from switchboard.clients.base import (
    Capabilities,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    ConnectionResult,
    ModelInfo,
    ProviderClient,
    ProviderMetrics,
)
from switchboard.clients.deepseek_client import DeepSeekClient
from switchboard.clients.gemini_client import GeminiClient
from switchboard.clients.lmstudio_client import LMStudioClient
from switchboard.clients.openai_client import OpenAIClient

__all__ = [
    "AnthropicClient",
    "Capabilities",
    "ChatMessage",
    "CompletionOptions",
    "CompletionResult",
    "ConnectionResult",
    "DeepSeekClient",
    "GeminiClient",
    "LMStudioClient",
    "ModelInfo",
    "OpenAIClient",
    "ProviderClient",
    "ProviderMetrics",
]
