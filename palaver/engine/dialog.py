"""
Dialog model for the Palaver engine.

A Dialog is the ordered history of one conversation. It is split in
Stories, each holding the Actions exchanged while that story was active.
Unlike pipeline frames these objects are mutable: handlers append to
them while a turn is being processed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from .definition import StoryDefinition


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex


class UserInterfaceType(str, Enum):
    """Kind of interface the user talks through."""

    TEXT_CHAT = "text_chat"
    VOICE_ASSISTANT = "voice_assistant"


class PlayerType(str, Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True)
class PlayerId:
    id: str
    type: PlayerType = PlayerType.USER


@dataclass
class ActionMetadata:
    """
    Metadata of an action.

    Attributes:
        last_answer: This action ends the current dispatch turn
    """

    last_answer: bool = False


@dataclass(eq=False)
class Action:
    """
    One message exchanged in a dialog.

    Inbound actions carry the resolved intent; bot answers carry text.
    Equality is identity: two answers with the same text are still
    distinct actions.
    """

    player_id: PlayerId
    recipient_id: PlayerId
    application_id: str
    text: str | None = None
    intent: str | None = None
    metadata: ActionMetadata = field(default_factory=ActionMetadata)
    id: str = field(default_factory=_new_id)
    date: datetime = field(default_factory=_utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.metadata.last_answer


@dataclass
class Story:
    """The actions played while one story definition was active."""

    definition: StoryDefinition
    starter_intent: str | None = None
    actions: list[Action] = field(default_factory=list)

    @property
    def last_action(self) -> Action | None:
        return self.actions[-1] if self.actions else None


@dataclass
class Dialog:
    """Ordered history of a conversation session."""

    player_ids: frozenset[PlayerId] = field(default_factory=frozenset)
    stories: list[Story] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    @property
    def current_story(self) -> Story | None:
        return self.stories[-1] if self.stories else None

    def all_actions(self) -> list[Action]:
        return [action for story in self.stories for action in story.actions]

    def terminal_actions(self) -> list[Action]:
        return [action for action in self.all_actions() if action.is_terminal]
