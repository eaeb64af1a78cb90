"""
Palaver bot engine.

Definitions, runtime bots, the story dispatch pipeline, installation
and the shared routing surface.
"""

from .bot import Bot, NlpIntentResolver, StoryHandlerListener
from .bus import BotBus
from .definition import (
    BotDefinition,
    BotDefinitionError,
    BotProvider,
    Intent,
    StaticBotProvider,
    StoryDefinition,
    StoryHandler,
)
from .dialog import (
    Action,
    ActionMetadata,
    Dialog,
    PlayerId,
    PlayerType,
    Story,
    UserInterfaceType,
)
from .installer import BotInstaller, DefaultNamespace
from .monitor import ConfigurationMonitor
from .repository import BotRepository, ConfigurationIntegrityError, check_connector_id_integrity
from .routing import BotRouter, ConnectorController
from .story import (
    DispatchResult,
    DispatchState,
    HandlerOutcome,
    SimpleStoryHandler,
    StoryHandlerBase,
    StoryHandlerDefinition,
)

__all__ = [
    "Action",
    "ActionMetadata",
    "Bot",
    "BotBus",
    "BotDefinition",
    "BotDefinitionError",
    "BotInstaller",
    "BotProvider",
    "BotRepository",
    "BotRouter",
    "ConfigurationIntegrityError",
    "ConfigurationMonitor",
    "ConnectorController",
    "DefaultNamespace",
    "Dialog",
    "DispatchResult",
    "DispatchState",
    "HandlerOutcome",
    "Intent",
    "NlpIntentResolver",
    "PlayerId",
    "PlayerType",
    "SimpleStoryHandler",
    "StaticBotProvider",
    "Story",
    "StoryDefinition",
    "StoryHandler",
    "StoryHandlerBase",
    "StoryHandlerDefinition",
    "StoryHandlerListener",
    "UserInterfaceType",
    "check_connector_id_integrity",
]
