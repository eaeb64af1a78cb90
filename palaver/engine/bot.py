"""
Runtime bot.

A Bot wraps one BotDefinition for the lifetime of the process. For each
inbound action it resolves the intent (through the NLP service when the
connector did not classify the message), selects the story, builds a
BotBus, runs the story handler and hands the answers to the connector.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from palaver.integrations.base import ServiceError
from palaver.integrations.nlp.schemas import ParseQuery, QueryContext
from palaver.reports.schemas import ParseRequestLog

from .bus import BotBus
from .dialog import Action, Dialog, Story, UserInterfaceType

if TYPE_CHECKING:
    from palaver.config.schemas import BotApplicationConfiguration
    from palaver.connectors.base import Connector
    from palaver.integrations.nlp import NlpClient, ParseResult
    from palaver.reports import ParseLogService

    from .definition import BotDefinition, StoryHandler

logger = logging.getLogger(__name__)

# (bot, action, locale) -> intent name or None
IntentResolver = Callable[["Bot", Action, str], Awaitable["str | None"]]


@runtime_checkable
class StoryHandlerListener(Protocol):
    """
    Hook around every dispatch.

    `start_action` may veto the dispatch by returning False.
    """

    async def start_action(self, bus: BotBus, handler: StoryHandler) -> bool: ...

    async def end_action(self, bus: BotBus, handler: StoryHandler, result: Any) -> None: ...


class NlpIntentResolver:
    """
    Resolves intents with the NLP service; failures fall back to unknown.

    Each parse is recorded in `parse_logs` when given.
    """

    def __init__(self, nlp_client: NlpClient, parse_logs: ParseLogService | None = None):
        self._nlp = nlp_client
        self._parse_logs = parse_logs

    async def __call__(self, bot: Bot, action: Action, locale: str) -> str | None:
        if not action.text:
            return None

        definition = bot.definition
        started = time.monotonic()
        result = None
        try:
            result = await self._nlp.parse(
                definition.namespace,
                definition.nlp_model_name,
                action.text,
                locale,
                client_id=action.player_id.id,
            )
        except ServiceError as e:
            logger.error(f"[{bot.bot_id}] NLP parse failed: {e}")

        if self._parse_logs is not None:
            await self._record(bot, action, locale, result, int((time.monotonic() - started) * 1000))
        return result.intent if result else None

    async def _record(
        self,
        bot: Bot,
        action: Action,
        locale: str,
        result: ParseResult | None,
        duration_ms: int,
    ) -> None:
        definition = bot.definition
        log = ParseRequestLog(
            application_id=f"{definition.namespace}:{definition.nlp_model_name}",
            query=ParseQuery(
                namespace=definition.namespace,
                application_name=definition.nlp_model_name,
                queries=[action.text or ""],
                context=QueryContext(language=locale, client_id=action.player_id.id),
            ),
            result=result,
            duration_ms=duration_ms,
            error=result is None,
        )
        try:
            await self._parse_logs.save(log)
        except Exception as e:
            logger.error(f"[{bot.bot_id}] parse log not saved: {e}", exc_info=True)


class Bot:
    """
    Runtime bot built from a definition.

    Attributes:
        definition: The immutable bot definition
        configurations: Persisted application configurations, by application id
    """

    def __init__(
        self,
        definition: BotDefinition,
        *,
        listeners: Iterable[StoryHandlerListener] = (),
        intent_resolver: IntentResolver | None = None,
    ):
        self.definition = definition
        self.configurations: dict[str, BotApplicationConfiguration] = {}
        self._listeners = list(listeners)
        self._intent_resolver = intent_resolver

    @property
    def bot_id(self) -> str:
        return self.definition.bot_id

    def update_configurations(self, configurations: Iterable[BotApplicationConfiguration]) -> list[str]:
        """
        Replace the known application configurations.

        Returns:
            Application ids added or changed
        """
        fresh = {conf.application_id: conf for conf in configurations}
        changed = [
            app_id
            for app_id, conf in fresh.items()
            if app_id not in self.configurations
            or self.configurations[app_id].model_dump(exclude={"updated_at"})
            != conf.model_dump(exclude={"updated_at"})
        ]
        removed = set(self.configurations) - set(fresh)
        self.configurations = fresh
        if changed or removed:
            logger.info(f"[{self.bot_id}] configurations changed: {changed}, removed: {sorted(removed)}")
        return changed

    async def handle(
        self,
        action: Action,
        dialog: Dialog,
        connector: Connector,
        *,
        user_interface_type: UserInterfaceType = UserInterfaceType.TEXT_CHAT,
        locale: str | None = None,
    ) -> list[Action]:
        """
        Handle one inbound action.

        Returns:
            The answers produced during the turn, already sent to the connector
        """
        locale = locale or self.definition.default_locale

        if action.intent is None and self._intent_resolver is not None:
            action.intent = await self._intent_resolver(self, action, locale)

        story_definition = self.definition.find_story(action.intent)
        story = dialog.current_story
        if story is None or story.definition is not story_definition:
            story = Story(definition=story_definition, starter_intent=action.intent)
            dialog.stories.append(story)
        story.actions.append(action)

        bus = BotBus(
            self,
            dialog,
            story,
            action,
            connector_type=connector.connector_type,
            user_interface_type=user_interface_type,
            locale=locale,
        )
        handler = story_definition.handler

        for listener in self._listeners:
            if not await listener.start_action(bus, handler):
                logger.info(f"[{self.bot_id}] dispatch of {action.intent} vetoed by {listener!r}")
                return []

        result = await handler.handle(bus)

        for listener in self._listeners:
            await listener.end_action(bus, handler, result)

        for answer, delay_ms in bus.answers_with_delay:
            await connector.send(answer, delay_ms)

        return bus.answers

    def __repr__(self) -> str:
        return f"Bot(bot_id='{self.bot_id}', namespace='{self.definition.namespace}')"
