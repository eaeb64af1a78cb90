"""
Configuration Service for Palaver.

Provides access to MongoDB-stored bot application configurations and
story definitions.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from .reconcile import merge_application_configuration
from .schemas import BotApplicationConfiguration, StoryDefinitionConfiguration

logger = logging.getLogger(__name__)


@runtime_checkable
class BotConfigurationStore(Protocol):
    """Persistence of bot application configurations."""

    async def get_configurations_by_bot_id(self, bot_id: str) -> list[BotApplicationConfiguration]: ...

    async def get_configuration_by_id(self, id: str) -> BotApplicationConfiguration | None: ...

    async def get_configuration_by_application_id_and_bot_id(
        self, application_id: str, bot_id: str
    ) -> BotApplicationConfiguration | None: ...

    async def get_configurations(self) -> list[BotApplicationConfiguration]: ...

    async def save(self, conf: BotApplicationConfiguration) -> BotApplicationConfiguration: ...

    async def update_if_not_manually_modified(
        self, conf: BotApplicationConfiguration
    ) -> BotApplicationConfiguration: ...

    async def delete(self, conf: BotApplicationConfiguration) -> None: ...


class TTLCache:
    """Simple TTL cache for configuration data."""

    def __init__(self, ttl_seconds: int = 300):
        self._cache: dict[str, tuple[Any, datetime]] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key: str) -> Any | None:
        if key in self._cache:
            value, expires = self._cache[key]
            if datetime.now(UTC) < expires:
                return value
            del self._cache[key]
        return None

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = (value, datetime.now(UTC) + self._ttl)

    def clear(self) -> None:
        self._cache.clear()


class ConfigurationService:
    """
    Service for accessing bot configuration from MongoDB.

    Collections:
    - bot_configurations: one document per (application_id, bot_id)
    - story_definitions: stories created from the admin

    Caching:
    - Story definitions per bot cached for 5 minutes, cleared on write
    """

    def __init__(
        self,
        mongodb_url: str,
        database_name: str = "palaver",
        cache_ttl: int = 300,
    ):
        """
        Initialize configuration service.

        Args:
            mongodb_url: MongoDB connection URL
            database_name: Database name
            cache_ttl: Cache TTL in seconds
        """
        self._mongodb_url = mongodb_url
        self._database_name = database_name
        self._client = None
        self._db = None
        self._cache = TTLCache(ttl_seconds=cache_ttl)

    @property
    def database(self):
        """The motor database, once connected."""
        return self._db

    async def connect(self) -> None:
        """Connect to MongoDB."""
        from motor.motor_asyncio import AsyncIOMotorClient

        self._client = AsyncIOMotorClient(self._mongodb_url)
        self._db = self._client[self._database_name]
        await self._db.bot_configurations.create_index(
            [("application_id", 1), ("bot_id", 1)], unique=True
        )
        logger.info(f"Connected to MongoDB database: {self._database_name}")

    async def close(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    async def _ensure_connected(self) -> None:
        if self._db is None:
            await self.connect()

    # ==================== Bot Configurations ====================

    async def get_configurations_by_bot_id(self, bot_id: str) -> list[BotApplicationConfiguration]:
        await self._ensure_connected()
        cursor = self._db.bot_configurations.find({"bot_id": bot_id})
        return [BotApplicationConfiguration(**doc) async for doc in cursor]

    async def get_configuration_by_id(self, id: str) -> BotApplicationConfiguration | None:
        await self._ensure_connected()
        doc = await self._db.bot_configurations.find_one({"_id": id})
        return BotApplicationConfiguration(**doc) if doc else None

    async def get_configuration_by_application_id_and_bot_id(
        self,
        application_id: str,
        bot_id: str,
    ) -> BotApplicationConfiguration | None:
        await self._ensure_connected()
        doc = await self._db.bot_configurations.find_one(
            {"application_id": application_id, "bot_id": bot_id}
        )
        return BotApplicationConfiguration(**doc) if doc else None

    async def get_configurations(self) -> list[BotApplicationConfiguration]:
        await self._ensure_connected()
        cursor = self._db.bot_configurations.find({})
        return [BotApplicationConfiguration(**doc) async for doc in cursor]

    async def save(self, conf: BotApplicationConfiguration) -> BotApplicationConfiguration:
        """Insert or replace a configuration by id."""
        await self._ensure_connected()
        conf = conf.model_copy(update={"updated_at": datetime.now(UTC)})
        await self._db.bot_configurations.replace_one(
            {"_id": conf.id},
            conf.to_document(),
            upsert=True,
        )
        return conf

    async def update_if_not_manually_modified(
        self,
        conf: BotApplicationConfiguration,
    ) -> BotApplicationConfiguration:
        """
        Save a configuration computed at install time.

        An operator-edited record is never overwritten by structurally
        identical data; see merge_application_configuration.

        Returns:
            The configuration now in effect
        """
        existing = await self.get_configuration_by_application_id_and_bot_id(
            conf.application_id, conf.bot_id
        )
        to_write = merge_application_configuration(existing, conf)
        if to_write is None:
            return existing
        return await self.save(to_write)

    async def delete(self, conf: BotApplicationConfiguration) -> None:
        await self._ensure_connected()
        await self._db.bot_configurations.delete_one({"_id": conf.id})

    # ==================== Story Definitions ====================

    async def get_story_definitions(self, bot_id: str) -> list[StoryDefinitionConfiguration]:
        cache_key = f"stories:{bot_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        await self._ensure_connected()
        cursor = self._db.story_definitions.find({"bot_id": bot_id})
        stories = [StoryDefinitionConfiguration(**doc) async for doc in cursor]
        self._cache.set(cache_key, stories)
        return stories

    async def get_story_definition_by_id(self, id: str) -> StoryDefinitionConfiguration | None:
        await self._ensure_connected()
        doc = await self._db.story_definitions.find_one({"_id": id})
        return StoryDefinitionConfiguration(**doc) if doc else None

    async def save_story_definition(self, story: StoryDefinitionConfiguration) -> None:
        await self._ensure_connected()
        story = story.model_copy(update={"updated_at": datetime.now(UTC)})
        await self._db.story_definitions.replace_one(
            {"_id": story.id},
            story.to_document(),
            upsert=True,
        )
        self._cache.clear()

    async def delete_story_definition(self, story: StoryDefinitionConfiguration) -> None:
        await self._ensure_connected()
        await self._db.story_definitions.delete_one({"_id": story.id})
        self._cache.clear()
