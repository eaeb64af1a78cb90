"""
Connector Protocol for Palaver.

A Connector adapts one external channel (messaging platform, voice
assistant, REST test client) to the engine. Connectors are built by a
ConnectorProvider from a ConnectorConfiguration, then registered on the
routing surface where they install their HTTP routes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from palaver.config.schemas import NONE_CONNECTOR_TYPE, ConnectorConfiguration

if TYPE_CHECKING:
    from palaver.engine.dialog import Action
    from palaver.engine.routing import ConnectorController

logger = logging.getLogger(__name__)


@runtime_checkable
class Connector(Protocol):
    """
    Channel adapter.

    Implementations handle:
    - Ingress: install routes through the controller, turn requests into
      actions and call `controller.handle()`
    - Egress: deliver bot answers with `send()`
    """

    @property
    def connector_type(self) -> str:
        """Connector type, e.g. "rest", "messenger", "alexa"."""
        ...

    async def register(self, controller: ConnectorController) -> None:
        """Install the connector routes."""
        ...

    async def send(self, action: Action, delay_ms: int = 0) -> None:
        """Deliver an answer to the user."""
        ...


@runtime_checkable
class ConnectorProvider(Protocol):
    """Factory of connectors of one type."""

    @property
    def connector_type(self) -> str: ...

    def connector(self, configuration: ConnectorConfiguration) -> Connector: ...


class NoneConnector:
    """Placeholder connector: installs no route and delivers nothing."""

    def __init__(self, configuration: ConnectorConfiguration | None = None):
        self.configuration = configuration

    @property
    def connector_type(self) -> str:
        return NONE_CONNECTOR_TYPE

    async def register(self, controller: ConnectorController) -> None:
        return None

    async def send(self, action: Action, delay_ms: int = 0) -> None:
        return None

    def __repr__(self) -> str:
        return "NoneConnector()"


class NoneConnectorProvider:
    """Provider of the placeholder connector, always registered."""

    @property
    def connector_type(self) -> str:
        return NONE_CONNECTOR_TYPE

    def connector(self, configuration: ConnectorConfiguration) -> NoneConnector:
        return NoneConnector(configuration)
