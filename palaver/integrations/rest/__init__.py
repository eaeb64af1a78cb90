"""
REST connector integration for Palaver.
"""

from .client import ConnectorRestClient, rest_connector_path
from .schemas import ClientMessageRequest, ClientMessageResponse, ClientSentence

__all__ = [
    "ClientMessageRequest",
    "ClientMessageResponse",
    "ClientSentence",
    "ConnectorRestClient",
    "rest_connector_path",
]
