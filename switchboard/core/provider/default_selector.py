"""Default provider selection with preference-ordered fallback."""

import logging
from collections.abc import Sequence

from switchboard.core.errors import NoRouteError

PREFERRED_PROVIDER_ORDER = ("openai", "anthropic", "deepseek", "gemini", "lmstudio")


class DefaultProviderSelector:
    """Selects the default provider.

    Responsibilities:
    - Honour the configured default when it is usable
    - Otherwise take the first usable provider in preference order
    - Raise a helpful error if nothing is usable
    """

    def __init__(
        self,
        default_provider: str = "",
        preferred_order: Sequence[str] = PREFERRED_PROVIDER_ORDER,
    ) -> None:
        """Initialize the default provider selector.

        Args:
            default_provider: The configured default provider id ("" = automatic).
            preferred_order: Provider ids tried in order when no default is usable.
        """
        self._default = default_provider
        self._preferred_order = tuple(preferred_order)
        self._actual_default: str | None = None

    def select(self, usable_providers: Sequence[str]) -> str:
        """Select the default provider from the usable ones.

        Raises:
            NoRouteError: If no provider is usable.
        """
        logger = logging.getLogger(__name__)

        if self._default and self._default in usable_providers:
            self._actual_default = self._default
            return self._default

        ordered = [p for p in self._preferred_order if p in usable_providers]
        ordered += [p for p in usable_providers if p not in ordered]
        if ordered:
            selected = ordered[0]
            self._actual_default = selected
            if self._default:
                logger.info(
                    f"Using '{selected}' as default provider "
                    f"(configured '{self._default}' not available)"
                )
            else:
                logger.debug(f"Using '{selected}' as default provider (first in preference order)")
            return selected

        hint = (self._default or "openai").upper()
        raise NoRouteError(
            f"No providers configured. Please set at least one provider API key "
            f"(e.g., {hint}_API_KEY) or start a local LM Studio server."
        )

    @property
    def configured_default(self) -> str:
        return self._default

    @property
    def actual_default(self) -> str | None:
        return self._actual_default
