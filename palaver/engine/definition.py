"""
Bot and story definitions.

A BotDefinition is built once per installation pass by a BotProvider and
is immutable afterwards. At construction it indexes its stories by id,
by intent and by handler, so the engine never scans the story list to
find which story a handler belongs to.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .dialog import UserInterfaceType

if TYPE_CHECKING:
    from .bus import BotBus

logger = logging.getLogger(__name__)


class BotDefinitionError(Exception):
    """Raised when a bot definition is inconsistent."""

    pass


@dataclass(frozen=True)
class Intent:
    name: str

    def __str__(self) -> str:
        return self.name


@runtime_checkable
class StoryHandler(Protocol):
    """Anything able to handle a bus for one story."""

    async def handle(self, bus: BotBus) -> Any: ...


@dataclass(frozen=True, eq=False)
class StoryDefinition:
    """
    A named conversational unit.

    Attributes:
        story_id: Unique id of the story within its bot
        handler: Handler invoked when the story is selected
        intents: Intents starting this story (the story id is always one)
        unsupported_user_interfaces: Interfaces this story cannot serve
    """

    story_id: str
    handler: StoryHandler
    intents: frozenset[str] = frozenset()
    unsupported_user_interfaces: frozenset[UserInterfaceType] = frozenset()

    @property
    def all_intents(self) -> frozenset[str]:
        return self.intents | {self.story_id}

    def supports(self, user_interface: UserInterfaceType) -> bool:
        return user_interface not in self.unsupported_user_interfaces


@dataclass(frozen=True, eq=False)
class BotDefinition:
    """
    Declaration of one bot.

    Attributes:
        bot_id: Bot identifier
        namespace: Tenant owning the bot, its intents and labels
        nlp_model_name: Name of the NLP application backing the bot
        stories: Stories the bot can execute
        unknown_story: Fallback story when no intent matches
        default_locale: Locale used when nothing else is known
    """

    bot_id: str
    namespace: str
    nlp_model_name: str
    stories: tuple[StoryDefinition, ...]
    unknown_story: StoryDefinition
    default_locale: str = "en"
    _by_id: dict[str, StoryDefinition] = field(init=False, repr=False)
    _by_intent: dict[str, StoryDefinition] = field(init=False, repr=False)
    _by_handler: dict[int, StoryDefinition] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        by_id: dict[str, StoryDefinition] = {}
        by_intent: dict[str, StoryDefinition] = {}
        by_handler: dict[int, StoryDefinition] = {}

        for story in (*self.stories, self.unknown_story):
            if story.story_id in by_id and by_id[story.story_id] is not story:
                raise BotDefinitionError(
                    f"Bot {self.bot_id}: duplicate story id {story.story_id}"
                )
            by_id[story.story_id] = story
            by_handler.setdefault(id(story.handler), story)
            for intent in story.all_intents:
                if intent in by_intent and by_intent[intent] is not story:
                    logger.warning(
                        f"Bot {self.bot_id}: intent {intent} already starts story "
                        f"{by_intent[intent].story_id}, ignored for {story.story_id}"
                    )
                    continue
                by_intent[intent] = story

        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_by_intent", by_intent)
        object.__setattr__(self, "_by_handler", by_handler)

    @classmethod
    def build(
        cls,
        bot_id: str,
        namespace: str,
        nlp_model_name: str,
        stories: Iterable[StoryDefinition],
        unknown_story: StoryDefinition,
        default_locale: str = "en",
    ) -> "BotDefinition":
        return cls(
            bot_id=bot_id,
            namespace=namespace,
            nlp_model_name=nlp_model_name,
            stories=tuple(stories),
            unknown_story=unknown_story,
            default_locale=default_locale,
        )

    def find_story(self, intent: str | None) -> StoryDefinition:
        """Story started by an intent, falling back to the unknown story."""
        if intent is None:
            return self.unknown_story
        return self._by_intent.get(intent, self.unknown_story)

    def find_story_by_id(self, story_id: str) -> StoryDefinition | None:
        return self._by_id.get(story_id)

    def story_for_handler(self, handler: StoryHandler) -> StoryDefinition | None:
        """Story a handler was declared with."""
        return self._by_handler.get(id(handler))


@runtime_checkable
class BotProvider(Protocol):
    """Builds a bot definition for an installation pass."""

    def bot_definition(self) -> BotDefinition: ...


class StaticBotProvider:
    """BotProvider returning an already built definition."""

    def __init__(self, definition: BotDefinition):
        self._definition = definition

    def bot_definition(self) -> BotDefinition:
        return self._definition
