"""
Pytest configuration and fixtures for Palaver tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from palaver.engine import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from palaver.config.reconcile import merge_application_configuration  # noqa: E402
from palaver.config.schemas import (  # noqa: E402
    BotApplicationConfiguration,
    ConnectorConfiguration,
    StoryDefinitionConfiguration,
)
from palaver.connectors.registry import reset_connector_registry  # noqa: E402
from palaver.engine import (  # noqa: E402
    BotDefinition,
    SimpleStoryHandler,
    StoryDefinition,
)

# =============================================================================
# Fakes
# =============================================================================


class InMemoryConfigurationStore:
    """BotConfigurationStore (and story store) keeping everything in dicts."""

    def __init__(self, configurations=()):
        self.configurations: dict[str, BotApplicationConfiguration] = {c.id: c for c in configurations}
        self.stories: dict[str, StoryDefinitionConfiguration] = {}
        self.writes: list[BotApplicationConfiguration] = []

    async def get_configurations_by_bot_id(self, bot_id):
        return [c for c in self.configurations.values() if c.bot_id == bot_id]

    async def get_configuration_by_id(self, id):
        return self.configurations.get(id)

    async def get_configuration_by_application_id_and_bot_id(self, application_id, bot_id):
        for conf in self.configurations.values():
            if conf.application_id == application_id and conf.bot_id == bot_id:
                return conf
        return None

    async def get_configurations(self):
        return list(self.configurations.values())

    async def save(self, conf):
        self.configurations[conf.id] = conf
        self.writes.append(conf)
        return conf

    async def update_if_not_manually_modified(self, conf):
        existing = await self.get_configuration_by_application_id_and_bot_id(conf.application_id, conf.bot_id)
        to_write = merge_application_configuration(existing, conf)
        if to_write is None:
            return existing
        return await self.save(to_write)

    async def delete(self, conf):
        self.configurations.pop(conf.id, None)

    async def get_story_definitions(self, bot_id):
        return [s for s in self.stories.values() if s.bot_id == bot_id]

    async def get_story_definition_by_id(self, id):
        return self.stories.get(id)

    async def save_story_definition(self, story):
        self.stories[story.id] = story

    async def delete_story_definition(self, story):
        self.stories.pop(story.id, None)


class RecordingConnector:
    """Connector recording registrations and sent answers."""

    def __init__(self, connector_type, configuration):
        self._connector_type = connector_type
        self.configuration = configuration
        self.controllers = []
        self.sent = []

    @property
    def connector_type(self):
        return self._connector_type

    async def register(self, controller):
        self.controllers.append(controller)

    async def send(self, action, delay_ms=0):
        self.sent.append((action, delay_ms))


class RecordingConnectorProvider:
    def __init__(self, connector_type="messenger"):
        self._connector_type = connector_type
        self.connectors = []

    @property
    def connector_type(self):
        return self._connector_type

    def connector(self, configuration):
        connector = RecordingConnector(self._connector_type, configuration)
        self.connectors.append(connector)
        return connector


async def _end_with_unknown(definition):
    definition.end("Sorry, I did not understand")


async def _end_with_hello(definition):
    definition.end("Hello!")


def make_bot_definition(bot_id="travel", namespace="acme", nlp_model="travel_model", stories=None):
    """Bot with a "greetings" story and an unknown story."""
    if stories is None:
        stories = [StoryDefinition("greetings", SimpleStoryHandler(_end_with_hello, "greetings"))]
    unknown = StoryDefinition("unknown", SimpleStoryHandler(_end_with_unknown, "unknown"))
    return BotDefinition.build(bot_id, namespace, nlp_model, stories, unknown)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_connector_registry():
    """Each test starts with a fresh global connector registry."""
    reset_connector_registry()
    yield
    reset_connector_registry()


@pytest.fixture
def store():
    return InMemoryConfigurationStore()


@pytest.fixture
def bot_definition():
    return make_bot_definition()


@pytest.fixture
def messenger_provider():
    return RecordingConnectorProvider("messenger")


@pytest.fixture
def messenger_configuration():
    return ConnectorConfiguration(
        connector_id="travel_messenger",
        type="messenger",
        name="Travel on Messenger",
        base_url="https://bot.example.com",
        parameters={"token": "declared"},
    )
