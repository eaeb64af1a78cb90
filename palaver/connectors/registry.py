"""
Connector Registry for Palaver.

Registry of connector providers keyed by connector type. The "none"
provider is always present so that a bot with no declared connector
still installs.

Duplicate policy: registering another provider for an already known
type raises DuplicateConnectorProviderError, unless `replace=True` is
passed, in which case the new provider explicitly replaces the old one.
Registering the same provider object twice is a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from palaver.config.schemas import NONE_CONNECTOR_TYPE

from .base import NoneConnectorProvider

if TYPE_CHECKING:
    from .base import ConnectorProvider

logger = logging.getLogger(__name__)


class ConnectorProviderNotFoundError(Exception):
    """
    Raised when no provider is registered for a connector type.

    A missing connector implementation is a deployment error: the
    installation run is aborted.
    """

    def __init__(self, connector_type: str, available: list[str]):
        self.connector_type = connector_type
        super().__init__(
            f"No connector provider registered for type: {connector_type}. "
            f"Available: {', '.join(available) or '(none)'}"
        )


class DuplicateConnectorProviderError(Exception):
    """Raised when a second provider is registered for a connector type."""

    def __init__(self, connector_type: str):
        self.connector_type = connector_type
        super().__init__(
            f"A connector provider is already registered for type: {connector_type}. "
            "Pass replace=True to replace it."
        )


class ConnectorRegistry:
    """
    Registry for connector providers.

    Example:
        registry = ConnectorRegistry()
        registry.register(RestConnectorProvider())

        provider = registry.resolve("rest")
        connector = provider.connector(configuration)
    """

    def __init__(self) -> None:
        self._providers: dict[str, ConnectorProvider] = {}
        self._register_default()

    def _register_default(self) -> None:
        self._providers[NONE_CONNECTOR_TYPE] = NoneConnectorProvider()

    def register(self, provider: ConnectorProvider, *, replace: bool = False) -> None:
        """
        Register a connector provider.

        Args:
            provider: Provider to register
            replace: Replace an existing provider of the same type

        Raises:
            DuplicateConnectorProviderError: If the type is taken and replace is False
        """
        connector_type = provider.connector_type
        current = self._providers.get(connector_type)

        if current is provider:
            return

        if current is not None:
            if not replace:
                raise DuplicateConnectorProviderError(connector_type)
            logger.warning(f"Replacing connector provider for type: {connector_type}")

        self._providers[connector_type] = provider
        logger.info(f"Registered connector provider: {connector_type}")

    def resolve(self, connector_type: str) -> ConnectorProvider:
        """
        Get the provider for a connector type.

        Raises:
            ConnectorProviderNotFoundError: If no provider is registered
        """
        provider = self._providers.get(connector_type)
        if provider is None:
            raise ConnectorProviderNotFoundError(connector_type, self.registered_types)
        return provider

    def has(self, connector_type: str) -> bool:
        return connector_type in self._providers

    @property
    def registered_types(self) -> list[str]:
        return list(self._providers.keys())

    def unregister(self, connector_type: str) -> bool:
        """
        Unregister a provider. The "none" provider cannot be removed.

        Returns:
            True if a provider was removed
        """
        if connector_type == NONE_CONNECTOR_TYPE:
            return False
        if connector_type in self._providers:
            del self._providers[connector_type]
            logger.info(f"Unregistered connector provider: {connector_type}")
            return True
        return False

    def clear(self) -> None:
        """Remove every provider except the default one (for testing)."""
        self._providers.clear()
        self._register_default()


# Global registry instance
_registry: ConnectorRegistry | None = None


def get_connector_registry() -> ConnectorRegistry:
    """Get the global connector registry, created on first access."""
    global _registry
    if _registry is None:
        _registry = ConnectorRegistry()
    return _registry


def register_connector_provider(provider: ConnectorProvider, *, replace: bool = False) -> None:
    """Register a provider in the global registry."""
    get_connector_registry().register(provider, replace=replace)


def reset_connector_registry() -> None:
    """Reset the global connector registry (for testing)."""
    global _registry
    _registry = None
