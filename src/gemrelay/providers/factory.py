"""Provider registry and factory.

Providers register under a short name with a class decorator; the factory
builds one instance per process from an LLMConfig. That instance is the
provider handle passed by reference to every orchestrator.
"""

from collections.abc import Callable
from typing import ClassVar

from gemrelay.exceptions import ConfigurationError, ProviderNotFoundError
from gemrelay.models.config import LLMConfig
from gemrelay.providers.base import LLMProvider


class ProviderRegistry:
    """Name → provider class mapping."""

    _providers: ClassVar[dict[str, type[LLMProvider]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[LLMProvider]], type[LLMProvider]]:
        """Register a provider class under ``name`` (case-insensitive).

        Example:
            @ProviderRegistry.register("gemini")
            class GeminiProvider(LLMProvider):
                ...
        """

        def decorator(provider_class: type[LLMProvider]) -> type[LLMProvider]:
            cls._providers[name.lower()] = provider_class
            return provider_class

        return decorator

    @classmethod
    def get(cls, name: str) -> type[LLMProvider]:
        """Look up a provider class.

        Raises:
            ProviderNotFoundError: If nothing is registered under ``name``.
        """
        try:
            return cls._providers[name.lower()]
        except KeyError:
            available = ", ".join(cls.list_providers()) or "none"
            msg = f"Provider '{name}' not found. Available: {available}"
            raise ProviderNotFoundError(msg) from None

    @classmethod
    def list_providers(cls) -> list[str]:
        """Sorted names of all registered providers."""
        return sorted(cls._providers)


def create_provider(config: LLMConfig) -> LLMProvider:
    """Build the provider handle described by ``config``.

    Raises:
        ProviderNotFoundError: If the provider is not registered.
        ConfigurationError: If the provider rejects the configuration.
    """
    provider_class = ProviderRegistry.get(config.provider)
    try:
        return provider_class(config)
    except Exception as e:
        msg = f"Failed to create provider '{config.provider}': {e}"
        raise ConfigurationError(msg) from e
