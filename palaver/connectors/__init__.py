"""
Palaver Connectors

Channel adapters and the registry of their providers.
"""

from .base import Connector, ConnectorProvider, NoneConnector, NoneConnectorProvider
from .registry import (
    ConnectorProviderNotFoundError,
    ConnectorRegistry,
    DuplicateConnectorProviderError,
    get_connector_registry,
    register_connector_provider,
    reset_connector_registry,
)
from .rest import RestConnector, RestConnectorProvider, admin_rest_connector_installer

__all__ = [
    "Connector",
    "ConnectorProvider",
    "ConnectorProviderNotFoundError",
    "ConnectorRegistry",
    "DuplicateConnectorProviderError",
    "NoneConnector",
    "NoneConnectorProvider",
    "RestConnector",
    "RestConnectorProvider",
    "admin_rest_connector_installer",
    "get_connector_registry",
    "register_connector_provider",
    "reset_connector_registry",
]
