"""
Wire models of the REST connector.

The REST connector is the test channel used by the admin "talk"
feature: a client posts a message, the bot answers in the response.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClientSentence(BaseModel):
    """A text message, optionally pre-classified."""

    text: str | None = None
    intent: str | None = None


class ClientMessageRequest(BaseModel):
    user_id: str
    recipient_id: str
    message: ClientSentence
    target_connector_type: str = "rest"


class ClientMessageResponse(BaseModel):
    messages: list[ClientSentence] = Field(default_factory=list)
