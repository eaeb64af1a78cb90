"""
Tests for the runtime bot.

Tests:
- Intent resolution through the NLP service
- Story handler listeners
- Answer delivery to connectors
- Configuration updates
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import RecordingConnector, make_bot_definition
from palaver.config.schemas import BotApplicationConfiguration
from palaver.engine import (
    Action,
    Bot,
    Dialog,
    NlpIntentResolver,
    PlayerId,
    PlayerType,
    SimpleStoryHandler,
    StoryDefinition,
)
from palaver.integrations.base import ServiceError
from palaver.integrations.nlp import ParseResult


def make_action(text="hello", intent=None):
    return Action(
        player_id=PlayerId("user_1", PlayerType.USER),
        recipient_id=PlayerId("travel", PlayerType.BOT),
        application_id="travel",
        text=text,
        intent=intent,
    )


def make_conf(application_id="web", **overrides):
    return BotApplicationConfiguration(
        application_id=application_id,
        bot_id="travel",
        namespace="acme",
        nlp_model="travel_model",
        **overrides,
    )


# =============================================================================
# Intent Resolution Tests
# =============================================================================


class TestNlpIntentResolver:
    @pytest.mark.asyncio
    async def test_resolves_intent(self, bot_definition):
        nlp = MagicMock()
        nlp.parse = AsyncMock(return_value=ParseResult(intent="greetings", intent_namespace="acme", language="en"))
        resolver = NlpIntentResolver(nlp)

        intent = await resolver(Bot(bot_definition), make_action("hi there"), "en")

        assert intent == "greetings"
        nlp.parse.assert_awaited_once_with("acme", "travel_model", "hi there", "en", client_id="user_1")

    @pytest.mark.asyncio
    async def test_empty_text_is_not_parsed(self, bot_definition):
        nlp = MagicMock()
        nlp.parse = AsyncMock()
        resolver = NlpIntentResolver(nlp)

        assert await resolver(Bot(bot_definition), make_action(text=None), "en") is None
        nlp.parse.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_service_error_gives_no_intent(self, bot_definition):
        nlp = MagicMock()
        nlp.parse = AsyncMock(side_effect=ServiceError("down", "nlp", status_code=503))
        resolver = NlpIntentResolver(nlp)

        assert await resolver(Bot(bot_definition), make_action(), "en") is None

    @pytest.mark.asyncio
    async def test_parse_is_logged(self, bot_definition):
        nlp = MagicMock()
        nlp.parse = AsyncMock(return_value=None)
        parse_logs = MagicMock()
        parse_logs.save = AsyncMock()
        resolver = NlpIntentResolver(nlp, parse_logs)

        await resolver(Bot(bot_definition), make_action("book 2 rooms"), "fr")

        log = parse_logs.save.await_args.args[0]
        assert log.application_id == "acme:travel_model"
        assert log.error is True
        assert log.query.queries == ["book 2 rooms"]
        assert log.query.context.language == "fr"
        assert log.query.context.client_id == "user_1"

    @pytest.mark.asyncio
    async def test_parse_log_failure_is_swallowed(self, bot_definition):
        nlp = MagicMock()
        nlp.parse = AsyncMock(return_value=ParseResult(intent="greetings", intent_namespace="acme", language="en"))
        parse_logs = MagicMock()
        parse_logs.save = AsyncMock(side_effect=RuntimeError("database down"))
        resolver = NlpIntentResolver(nlp, parse_logs)

        assert await resolver(Bot(bot_definition), make_action(), "en") == "greetings"

    @pytest.mark.asyncio
    async def test_bot_uses_resolver_for_unclassified_actions(self, bot_definition):
        resolver = AsyncMock(return_value="greetings")
        bot = Bot(bot_definition, intent_resolver=resolver)

        answers = await bot.handle(make_action(), Dialog(), RecordingConnector("rest", None))

        assert [a.text for a in answers] == ["Hello!"]
        resolver.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_classified_actions_skip_resolver(self, bot_definition):
        resolver = AsyncMock(return_value="weather")
        bot = Bot(bot_definition, intent_resolver=resolver)

        answers = await bot.handle(make_action(intent="greetings"), Dialog(), RecordingConnector("rest", None))

        assert [a.text for a in answers] == ["Hello!"]
        resolver.assert_not_awaited()


# =============================================================================
# Listener Tests
# =============================================================================


class TestStoryHandlerListeners:
    @pytest.mark.asyncio
    async def test_listeners_called_around_dispatch(self, bot_definition):
        listener = MagicMock()
        listener.start_action = AsyncMock(return_value=True)
        listener.end_action = AsyncMock()
        bot = Bot(bot_definition, listeners=[listener])

        await bot.handle(make_action(intent="greetings"), Dialog(), RecordingConnector("rest", None))

        listener.start_action.assert_awaited_once()
        bus, handler, result = listener.end_action.await_args.args
        assert bus.story.definition.story_id == "greetings"
        assert handler is bot_definition.find_story("greetings").handler
        assert result.completed

    @pytest.mark.asyncio
    async def test_veto_skips_dispatch(self, bot_definition):
        listener = MagicMock()
        listener.start_action = AsyncMock(return_value=False)
        listener.end_action = AsyncMock()
        connector = RecordingConnector("rest", None)
        bot = Bot(bot_definition, listeners=[listener])

        answers = await bot.handle(make_action(intent="greetings"), Dialog(), connector)

        assert answers == []
        assert connector.sent == []
        listener.end_action.assert_not_awaited()


# =============================================================================
# Delivery Tests
# =============================================================================


class TestAnswerDelivery:
    @pytest.mark.asyncio
    async def test_answers_sent_with_delay(self):
        async def handle(definition):
            definition.send("Let me check", delay_ms=0)
            definition.end("Your room is booked", delay_ms=1000)

        definition = make_bot_definition(stories=[StoryDefinition("booking", SimpleStoryHandler(handle))])
        connector = RecordingConnector("messenger", None)

        answers = await Bot(definition).handle(make_action(intent="booking"), Dialog(), connector)

        assert [(a.text, delay) for a, delay in connector.sent] == [
            ("Let me check", 0),
            ("Your room is booked", 1000),
        ]
        assert [a.player_id for a in answers] == [PlayerId("travel", PlayerType.BOT)] * 2
        assert all(a.recipient_id == PlayerId("user_1", PlayerType.USER) for a in answers)

    @pytest.mark.asyncio
    async def test_default_locale_from_definition(self, bot_definition):
        listener = MagicMock()
        listener.start_action = AsyncMock(return_value=True)
        listener.end_action = AsyncMock()
        bot = Bot(bot_definition, listeners=[listener])

        await bot.handle(make_action(intent="greetings"), Dialog(), RecordingConnector("rest", None))

        bus = listener.start_action.await_args.args[0]
        assert bus.locale == "en"
        assert bus.connector_type == "rest"


# =============================================================================
# Configuration Tests
# =============================================================================


class TestUpdateConfigurations:
    def test_new_configurations_are_changes(self, bot_definition):
        bot = Bot(bot_definition)

        assert bot.update_configurations([make_conf("web"), make_conf("messenger")]) == ["web", "messenger"]

    def test_timestamp_only_is_not_a_change(self, bot_definition):
        bot = Bot(bot_definition)
        conf = make_conf()
        bot.update_configurations([conf])

        refreshed = conf.model_copy(update={"updated_at": conf.updated_at.replace(year=2030)})

        assert bot.update_configurations([refreshed]) == []

    def test_removed_configurations_are_dropped(self, bot_definition):
        bot = Bot(bot_definition)
        bot.update_configurations([make_conf("web"), make_conf("messenger")])

        assert bot.update_configurations([make_conf("web")]) == ["web"]
        assert list(bot.configurations) == ["web"]
