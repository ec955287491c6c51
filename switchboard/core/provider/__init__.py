"""Provider registry, selection and configuration loading."""

from switchboard.core.provider.default_selector import DefaultProviderSelector
from switchboard.core.provider.health import HealthStatus
from switchboard.core.provider.provider_config_loader import ProviderConfigLoader
from switchboard.core.provider.provider_registry import (
    ProviderInstance,
    ProviderMetadata,
    ProviderRegistration,
    ProviderRegistry,
    SelectionRequirements,
)

__all__ = [
    "DefaultProviderSelector",
    "HealthStatus",
    "ProviderConfigLoader",
    "ProviderInstance",
    "ProviderMetadata",
    "ProviderRegistration",
    "ProviderRegistry",
    "SelectionRequirements",
]
