"""
REST connector client.

Used by the admin to talk to a bot through its REST connector:

    async with ConnectorRestClient("https://bot.example.com") as client:
        response = await client.talk("web_rest", "en", request)
"""

from __future__ import annotations

import logging

from palaver.integrations.base import ServiceClient, ServiceConfig

from .schemas import ClientMessageRequest, ClientMessageResponse

logger = logging.getLogger(__name__)

REST_CONNECTOR_PREFIX = "/rest"


def rest_connector_path(application_id: str) -> str:
    """Base path of the REST connector of an application."""
    return f"{REST_CONNECTOR_PREFIX}/{application_id}"


class ConnectorRestClient(ServiceClient):
    """Client of the bot REST connector. No retry: talk is interactive."""

    def __init__(self, base_url: str, *, timeout: float = 30.0):
        super().__init__(ServiceConfig(base_url=base_url, timeout=timeout, retry=None))

    @property
    def name(self) -> str:
        return "rest_connector"

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def talk(
        self,
        application_id: str,
        locale: str,
        request: ClientMessageRequest,
    ) -> ClientMessageResponse:
        """
        Send a message and return the bot answers.

        Raises:
            ServiceError: On transport failure or non-2xx response
        """
        response = await self._request(
            "POST",
            f"{rest_connector_path(application_id)}/{locale}",
            json=request.model_dump(),
        )
        return ClientMessageResponse.model_validate(response.json())
