"""
REST connector.

A test channel: a client posts a ClientMessageRequest to
`/rest/{application_id}/{locale}` and receives the bot answers in the
response body. The admin "talk" feature goes through it, so every bot
application gets a companion REST connector at install time
(see `admin_rest_connector_installer`).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from palaver.config.schemas import REST_CONNECTOR_TYPE, ConnectorConfiguration
from palaver.engine.dialog import Action, PlayerId, PlayerType
from palaver.integrations.rest import (
    ClientMessageRequest,
    ClientMessageResponse,
    ClientSentence,
    rest_connector_path,
)

if TYPE_CHECKING:
    from palaver.config.schemas import BotApplicationConfiguration
    from palaver.engine.routing import ConnectorController

logger = logging.getLogger(__name__)


class RestConnector:
    """Answers are returned synchronously, so `send()` delivers nothing."""

    def __init__(self, configuration: ConnectorConfiguration):
        self.configuration = configuration

    @property
    def connector_type(self) -> str:
        return REST_CONNECTOR_TYPE

    def base_path(self, controller: ConnectorController) -> str:
        if controller.configuration is not None and controller.configuration.path:
            return controller.configuration.path
        return rest_connector_path(controller.application_id)

    async def register(self, controller: ConnectorController) -> None:
        application_id = controller.application_id

        async def talk(locale: str, request: ClientMessageRequest) -> ClientMessageResponse:
            action = Action(
                player_id=PlayerId(request.user_id, PlayerType.USER),
                recipient_id=PlayerId(request.recipient_id, PlayerType.BOT),
                application_id=application_id,
                text=request.message.text,
                intent=request.message.intent,
            )
            answers = await controller.handle(action, locale=locale)
            return ClientMessageResponse(
                messages=[ClientSentence(text=answer.text) for answer in answers]
            )

        controller.add_route(
            f"{self.base_path(controller)}/{{locale}}",
            talk,
            methods=["POST"],
            response_model=ClientMessageResponse,
            name=f"rest_{application_id}",
        )

    async def send(self, action: Action, delay_ms: int = 0) -> None:
        return None

    def __repr__(self) -> str:
        return f"RestConnector(connector_id='{self.configuration.connector_id}')"


class RestConnectorProvider:
    @property
    def connector_type(self) -> str:
        return REST_CONNECTOR_TYPE

    def connector(self, configuration: ConnectorConfiguration) -> RestConnector:
        return RestConnector(configuration)


def admin_rest_connector_installer(
    conf: BotApplicationConfiguration,
) -> ConnectorConfiguration | None:
    """
    Companion REST connector of an application, used by the admin to talk to it.

    Returns None for REST applications: they are reachable already.
    """
    if conf.connector_type == REST_CONNECTOR_TYPE:
        return None

    connector_id = f"{conf.application_id}_rest"
    return ConnectorConfiguration(
        connector_id=connector_id,
        type=REST_CONNECTOR_TYPE,
        owner_connector_type=conf.connector_type,
        name=f"{conf.name}_rest" if conf.name else connector_id,
        path=rest_connector_path(connector_id),
    )
