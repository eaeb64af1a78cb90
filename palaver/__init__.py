"""
Palaver - a conversational bot platform.

Bots are declared as stories, installed against connector configurations
persisted in MongoDB, and served on a shared FastAPI routing surface:

- **Connectors**: channel adapters built by providers keyed by type
- **Configuration**: declared connectors reconciled with operator edits
- **Engine**: bot definitions, story dispatch with an explicit end of turn
- **Admin**: configuration, intents, reports and a REST "talk" test channel

Quick Start:
    >>> from palaver import BotRepository, BotDefinition, StoryDefinition, SimpleStoryHandler
    >>>
    >>> async def greet(definition):
    ...     definition.end("Hello!")
    >>>
    >>> greetings = StoryDefinition("greetings", SimpleStoryHandler(greet))
    >>> unknown = StoryDefinition("unknown", SimpleStoryHandler(greet))
    >>> definition = BotDefinition.build("bot", "app", "bot_model", [greetings], unknown)
    >>> repository = BotRepository(ConfigurationService("mongodb://localhost:27017"))
    >>> repository.register_bot_provider(StaticBotProvider(definition))
    >>> app = await repository.install_bots()
"""

__version__ = "0.1.0"

# Core exports for convenient imports
from palaver.config import BotApplicationConfiguration, ConnectorConfiguration
from palaver.engine import (
    BotDefinition,
    BotRepository,
    SimpleStoryHandler,
    StaticBotProvider,
    StoryDefinition,
    StoryHandlerBase,
    StoryHandlerDefinition,
)

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "BotApplicationConfiguration",
    "ConnectorConfiguration",
    # Engine
    "BotDefinition",
    "BotRepository",
    "SimpleStoryHandler",
    "StaticBotProvider",
    "StoryDefinition",
    "StoryHandlerBase",
    "StoryHandlerDefinition",
]
