"""
BotBus: the per-event context handed to story handlers.

A bus is created for each inbound action and dropped once the turn is
over. Handlers answer through `send()` and close the turn with `end()`;
the bus records answers on the current story and keeps them for the
connector to deliver.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .dialog import Action, ActionMetadata, Dialog, PlayerId, PlayerType, Story, UserInterfaceType

if TYPE_CHECKING:
    from palaver.i18n import I18nKeyProvider

    from .bot import Bot
    from .definition import BotDefinition, StoryDefinition

logger = logging.getLogger(__name__)


class BotBus:
    """
    Request-scoped dispatch context.

    Attributes:
        bot: The bot handling the event
        dialog: Conversation history, shared with later turns
        story: Story currently active
        action: The inbound action being processed
        connector_type: Type of the connector the action came from
        user_interface_type: Interface the user talks through
        i18n_provider: Label provider bound by the handler for this call
    """

    def __init__(
        self,
        bot: Bot,
        dialog: Dialog,
        story: Story,
        action: Action,
        *,
        connector_type: str = "none",
        user_interface_type: UserInterfaceType = UserInterfaceType.TEXT_CHAT,
        locale: str | None = None,
    ):
        self.bot = bot
        self.dialog = dialog
        self.story = story
        self.action = action
        self.connector_type = connector_type
        self.user_interface_type = user_interface_type
        self.locale = locale or bot.definition.default_locale
        self.i18n_provider: I18nKeyProvider | None = None
        self._answers: list[tuple[Action, int]] = []
        self._terminal_action: Action | None = None

    @property
    def bot_definition(self) -> BotDefinition:
        return self.bot.definition

    @property
    def user_id(self) -> PlayerId:
        return self.action.player_id

    @property
    def bot_id(self) -> PlayerId:
        return self.action.recipient_id

    @property
    def intent(self) -> str | None:
        return self.action.intent

    @property
    def ended(self) -> bool:
        """True once `end()` closed the current turn."""
        return self._terminal_action is not None

    @property
    def terminal_action(self) -> Action | None:
        return self._terminal_action

    @property
    def answers(self) -> list[Action]:
        """Answers produced during this turn, in order."""
        return [action for action, _ in self._answers]

    @property
    def answers_with_delay(self) -> list[tuple[Action, int]]:
        return list(self._answers)

    def switch_story(self, definition: StoryDefinition) -> Story:
        """Make `definition` the active story for the rest of the turn."""
        if self.story.definition is definition:
            return self.story
        story = Story(definition=definition, starter_intent=self.intent)
        self.dialog.stories.append(story)
        self.story = story
        return story

    def translate(self, label: str, *args: Any) -> str:
        """Resolve a default label through the bound i18n provider."""
        if self.i18n_provider is None:
            return label.format(*args) if args else label
        return self.i18n_provider.i18n_key_from_label(label, args).format()

    def send(self, text: str, *args: Any, delay_ms: int = 0) -> Action:
        """Queue an intermediate answer."""
        if self.ended:
            logger.warning(f"send() called after end() in story {self.story.definition.story_id}")
        return self._answer(self.translate(text, *args), delay_ms, last_answer=False)

    def end(self, text: str | None = None, *args: Any, delay_ms: int = 0) -> Action | None:
        """
        Close the current turn.

        With a text, a final answer is appended. Without one, the last
        answer sent during this turn becomes the terminal action, or an
        empty terminal action is appended if nothing was sent.

        A turn has at most one terminal action: a second call is ignored.
        """
        if self.ended:
            logger.warning(
                f"end() called twice in story {self.story.definition.story_id} - ignored"
            )
            return None

        if text is None and self._answers:
            last, _ = self._answers[-1]
            if self.story.last_action is last:
                last.metadata.last_answer = True
                self._terminal_action = last
                return last

        action = self._answer(
            self.translate(text, *args) if text is not None else None,
            delay_ms,
            last_answer=True,
        )
        self._terminal_action = action
        return action

    def _answer(self, text: str | None, delay_ms: int, *, last_answer: bool) -> Action:
        action = Action(
            player_id=PlayerId(self.bot_id.id, PlayerType.BOT),
            recipient_id=self.user_id,
            application_id=self.action.application_id,
            text=text,
            metadata=ActionMetadata(last_answer=last_answer),
        )
        self.story.actions.append(action)
        self._answers.append((action, delay_ms))
        return action

    def __repr__(self) -> str:
        return (
            f"BotBus(bot={self.bot_definition.bot_id}, "
            f"story={self.story.definition.story_id}, intent={self.intent})"
        )
