"""
Tests for reports and parse logs.

Tests:
- Digit obfuscation of stored queries
- ParseLogService queries and aggregation
- ReportService upserts and searches
- DialogReportRecorder listener
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import RecordingConnector
from palaver.engine import Action, Bot, Dialog, PlayerId, PlayerType
from palaver.integrations.nlp import ParseQuery, ParseResult, QueryContext
from palaver.reports import (
    DialogReportRecorder,
    DialogsSearchQuery,
    ParseLogService,
    ParseRequestLog,
    ParseRequestLogQuery,
    ParseRequestLogStatQuery,
    ReportService,
    UserReport,
    UserSearchQuery,
    obfuscate,
)


class FakeCursor:
    """Motor-like cursor over a list of documents."""

    def __init__(self, docs):
        self.docs = list(docs)
        self.calls = []

    def sort(self, *args):
        self.calls.append(("sort", args))
        return self

    def skip(self, n):
        self.calls.append(("skip", n))
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            yield doc


def make_collection(docs=(), total=None):
    collection = MagicMock()
    cursor = FakeCursor(docs)
    collection.cursor = cursor
    collection.find = MagicMock(return_value=cursor)
    collection.aggregate = MagicMock(return_value=cursor)
    collection.count_documents = AsyncMock(return_value=len(docs) if total is None else total)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.replace_one = AsyncMock()
    collection.create_index = AsyncMock()
    return collection


def make_log(text="my number is 0612345678", result=None):
    return ParseRequestLog(
        application_id="acme:travel_model",
        query=ParseQuery(
            namespace="acme",
            application_name="travel_model",
            queries=[text],
            context=QueryContext(language="en", client_id="u1"),
        ),
        result=result,
        duration_ms=12,
    )


# =============================================================================
# Obfuscation Tests
# =============================================================================


class TestObfuscate:
    def test_digits_are_masked(self):
        assert obfuscate("card 4242 4242") == "card **** ****"

    def test_none(self):
        assert obfuscate(None) is None


# =============================================================================
# ParseLogService Tests
# =============================================================================


class TestParseLogService:
    @pytest.mark.asyncio
    async def test_save_obfuscates(self):
        database = MagicMock()
        database.parse_request_log = make_collection()
        service = ParseLogService(database)
        result = ParseResult(
            intent="call", intent_namespace="acme", language="en", retained_query="call 0612345678"
        )

        await service.save(make_log(result=result))

        doc = database.parse_request_log.insert_one.await_args.args[0]
        assert doc["text"] == "call **********"
        assert doc["query"]["queries"] == ["my number is **********"]
        assert doc["result"]["retained_query"] == "call **********"

    @pytest.mark.asyncio
    async def test_ttl_index(self):
        database = MagicMock()
        database.parse_request_log = make_collection()
        service = ParseLogService(database, ttl_days=2)

        await service.ensure_indexes()

        database.parse_request_log.create_index.assert_any_await("date", expireAfterSeconds=2 * 24 * 3600)

    @pytest.mark.asyncio
    async def test_search_filters(self):
        log = make_log("hello").model_dump()
        database = MagicMock()
        database.parse_request_log = make_collection([log])
        service = ParseLogService(database)

        result = await service.search(
            ParseRequestLogQuery(application_id="acme:travel_model", language="en", search="hel", client_id="u1")
        )

        assert result.total == 1
        assert result.logs[0].text == "hello"
        filters = database.parse_request_log.find.call_args.args[0]
        assert filters["text"] == {"$regex": "hel", "$options": "i"}
        assert filters["query.context.client_id"] == "u1"
        assert ("sort", ("date", -1)) in database.parse_request_log.cursor.calls

    @pytest.mark.asyncio
    async def test_search_exact_match(self):
        database = MagicMock()
        database.parse_request_log = make_collection()
        service = ParseLogService(database)

        await service.search(
            ParseRequestLogQuery(
                application_id="acme:travel_model", language="en", search="hello", only_exact_match=True
            )
        )

        filters = database.parse_request_log.count_documents.await_args.args[0]
        assert filters["text"] == "hello"

    @pytest.mark.asyncio
    async def test_search_past_the_end_is_empty(self):
        database = MagicMock()
        database.parse_request_log = make_collection(total=5)
        service = ParseLogService(database)

        result = await service.search(
            ParseRequestLogQuery(application_id="acme:travel_model", language="en", start=5)
        )

        assert result.total == 0
        assert result.logs == []
        database.parse_request_log.find.assert_not_called()

    @pytest.mark.asyncio
    async def test_stats_by_day(self):
        database = MagicMock()
        database.parse_request_log = make_collection(
            [
                {
                    "_id": {"day_of_year": 32, "year": 2026},
                    "error": 1,
                    "count": 10,
                    "duration": 15.5,
                    "intent_probability": 0.8,
                    "entities_probability": None,
                }
            ]
        )
        service = ParseLogService(database)

        stats = await service.stats(ParseRequestLogStatQuery(application_id="acme:travel_model", language="en"))

        assert stats[0].day == date(2026, 2, 1)
        assert stats[0].count == 10
        assert stats[0].error == 1
        pipeline = database.parse_request_log.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"application_id": "acme:travel_model", "query.context.language": "en"}}


# =============================================================================
# ReportService Tests
# =============================================================================


class TestReportService:
    @pytest.mark.asyncio
    async def test_save_user_upserts(self):
        database = MagicMock()
        database.users = make_collection()
        database.dialogs = make_collection()
        service = ReportService(database)

        await service.save_user(
            UserReport(player_id="u1", namespace="acme", bot_id="travel", application_ids=["web"])
        )

        selector, update = database.users.update_one.await_args.args
        assert selector == {"_id": "u1"}
        assert update["$addToSet"] == {"application_ids": {"$each": ["web"]}}
        assert "creation_date" in update["$setOnInsert"]
        assert "creation_date" not in update["$set"]
        assert database.users.update_one.await_args.kwargs == {"upsert": True}

    @pytest.mark.asyncio
    async def test_search_users(self):
        now = datetime.now(UTC)
        database = MagicMock()
        database.users = make_collection(
            [{"_id": "u1", "namespace": "acme", "bot_id": "travel", "last_update_date": now}], total=12
        )
        database.dialogs = make_collection()
        service = ReportService(database)

        result = await service.search_users(UserSearchQuery(namespace="acme", start=10, size=2))

        assert result.total == 12
        assert result.start == 10
        assert result.end == 11
        assert result.users[0].player_id == "u1"
        assert database.users.find.call_args.args[0] == {"namespace": "acme"}

    @pytest.mark.asyncio
    async def test_search_dialogs_by_intent(self):
        database = MagicMock()
        database.users = make_collection()
        database.dialogs = make_collection()
        service = ReportService(database)

        await service.search_dialogs(DialogsSearchQuery(namespace="acme", intent="greetings"))

        assert database.dialogs.count_documents.await_args.args[0] == {
            "namespace": "acme",
            "actions.intent": "greetings",
        }


# =============================================================================
# DialogReportRecorder Tests
# =============================================================================


class TestDialogReportRecorder:
    @pytest.mark.asyncio
    async def test_reports_saved_after_dispatch(self, bot_definition):
        reports = MagicMock()
        reports.save_user = AsyncMock()
        reports.save_dialog = AsyncMock()
        bot = Bot(bot_definition, listeners=[DialogReportRecorder(reports)])
        user = PlayerId("u1", PlayerType.USER)
        dialog = Dialog(player_ids=frozenset({user}))

        await bot.handle(
            Action(
                player_id=user,
                recipient_id=PlayerId("travel", PlayerType.BOT),
                application_id="web",
                text="hi",
                intent="greetings",
            ),
            dialog,
            RecordingConnector("rest", None),
        )

        user_report = reports.save_user.await_args.args[0]
        assert user_report.player_id == "u1"
        assert user_report.application_ids == ["web"]
        assert user_report.locale == "en"

        dialog_report = reports.save_dialog.await_args.args[0]
        assert dialog_report.id == dialog.id
        assert dialog_report.player_ids == ["u1"]
        assert [(a.text, a.last_answer) for a in dialog_report.actions] == [("hi", False), ("Hello!", True)]

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_fail_dispatch(self, bot_definition):
        reports = MagicMock()
        reports.save_user = AsyncMock(side_effect=RuntimeError("database down"))
        reports.save_dialog = AsyncMock()
        bot = Bot(bot_definition, listeners=[DialogReportRecorder(reports)])

        answers = await bot.handle(
            Action(
                player_id=PlayerId("u1"),
                recipient_id=PlayerId("travel", PlayerType.BOT),
                application_id="web",
                intent="greetings",
            ),
            Dialog(),
            RecordingConnector("rest", None),
        )

        assert [a.text for a in answers] == ["Hello!"]
