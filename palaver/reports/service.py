"""
Report stores for the admin.

ParseLogService keeps the NLP parse requests (expired after a TTL) and
aggregates them per day. ReportService stores user and dialog read
models; DialogReportRecorder feeds it after each dispatch.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from .schemas import (
    ActionReport,
    DialogReport,
    DialogReportQueryResult,
    DialogsSearchQuery,
    ParseRequestLog,
    ParseRequestLogQuery,
    ParseRequestLogQueryResult,
    ParseRequestLogStat,
    ParseRequestLogStatQuery,
    UserReport,
    UserSearchQuery,
    UserSearchQueryResult,
)

if TYPE_CHECKING:
    from palaver.engine.bus import BotBus
    from palaver.engine.definition import StoryHandler

logger = logging.getLogger(__name__)

_DIGIT = re.compile(r"\d")


def obfuscate(text: str | None) -> str | None:
    """Mask digits (card numbers, phone numbers) before storage."""
    if text is None:
        return None
    return _DIGIT.sub("*", text)


def _without_none(filters: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in filters.items() if v is not None}


# =============================================================================
# Parse logs
# =============================================================================


class ParseLogService:
    """
    Parse request logs in the 'parse_request_log' collection.

    Args:
        database: Motor database
        ttl_days: Logs are removed by MongoDB after this many days
    """

    def __init__(self, database, ttl_days: int = 7):
        self._col = database.parse_request_log
        self._ttl_days = ttl_days

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("query.context.language", 1), ("application_id", 1)])
        await self._col.create_index(
            [("query.context.language", 1), ("application_id", 1), ("text", 1)]
        )
        await self._col.create_index("date", expireAfterSeconds=self._ttl_days * 24 * 3600)

    async def save(self, log: ParseRequestLog) -> None:
        """Store a log with its query text obfuscated."""
        query = log.query.model_copy(update={"queries": [obfuscate(q) for q in log.query.queries]})
        result = (
            log.result.model_copy(update={"retained_query": obfuscate(log.result.retained_query) or ""})
            if log.result
            else None
        )
        saved = log.model_copy(update={"query": query, "result": result})
        await self._col.insert_one({"text": saved.text, **saved.model_dump()})

    async def search(self, query: ParseRequestLogQuery) -> ParseRequestLogQueryResult:
        filters: dict[str, Any] = {
            "application_id": query.application_id,
            "query.context.language": query.language,
        }
        if query.search and query.search.strip():
            if query.only_exact_match:
                filters["text"] = query.search
            else:
                filters["text"] = {"$regex": re.escape(query.search.strip()), "$options": "i"}
        dates = _without_none({"$gte": query.since_date, "$lte": query.until_date})
        if dates:
            filters["date"] = dates
        if query.client_device and query.client_device.strip():
            filters["query.context.client_device"] = query.client_device
        if query.client_id and query.client_id.strip():
            filters["query.context.client_id"] = query.client_id

        total = await self._col.count_documents(filters)
        if total <= query.start:
            return ParseRequestLogQueryResult(total=0, logs=[])

        cursor = self._col.find(filters).sort("date", -1).skip(query.start).limit(query.size)
        logs = [ParseRequestLog(**doc) async for doc in cursor]
        return ParseRequestLogQueryResult(total=total, logs=logs)

    async def stats(self, query: ParseRequestLogStatQuery) -> list[ParseRequestLogStat]:
        """Per-day counts and averages, oldest day first."""
        match = _without_none(
            {
                "application_id": query.application_id,
                "query.context.language": query.language,
                "result.intent": query.intent,
            }
        )
        pipeline = [
            {"$match": match},
            {
                "$project": {
                    "error": {"$cond": ["$error", 1, 0]},
                    "day_of_year": {"$dayOfYear": "$date"},
                    "year": {"$year": "$date"},
                    "duration": "$duration_ms",
                    "intent_probability": "$result.intent_probability",
                    "entities_probability": "$result.entities_probability",
                }
            },
            {
                "$group": {
                    "_id": {"day_of_year": "$day_of_year", "year": "$year"},
                    "error": {"$sum": "$error"},
                    "count": {"$sum": 1},
                    "duration": {"$avg": "$duration"},
                    "intent_probability": {"$avg": "$intent_probability"},
                    "entities_probability": {"$avg": "$entities_probability"},
                }
            },
            {"$sort": {"_id.year": 1, "_id.day_of_year": 1}},
        ]

        stats = []
        async for doc in self._col.aggregate(pipeline):
            day_key = doc.pop("_id")
            day = date(day_key["year"], 1, 1) + timedelta(days=day_key["day_of_year"] - 1)
            stats.append(ParseRequestLogStat(day=day, **doc))
        return stats


# =============================================================================
# Users & dialogs
# =============================================================================


class ReportService:
    """User and dialog reports in the 'users' and 'dialogs' collections."""

    def __init__(self, database):
        self._users = database.users
        self._dialogs = database.dialogs

    async def save_user(self, user: UserReport) -> None:
        doc = user.model_dump(by_alias=True)
        doc.pop("_id")
        creation_date = doc.pop("creation_date")
        application_ids = doc.pop("application_ids")
        await self._users.update_one(
            {"_id": user.player_id},
            {
                "$set": doc,
                "$setOnInsert": {"creation_date": creation_date},
                "$addToSet": {"application_ids": {"$each": application_ids}},
            },
            upsert=True,
        )

    async def save_dialog(self, dialog: DialogReport) -> None:
        await self._dialogs.replace_one(
            {"_id": dialog.id},
            dialog.model_dump(by_alias=True),
            upsert=True,
        )

    async def search_users(self, query: UserSearchQuery) -> UserSearchQueryResult:
        filters: dict[str, Any] = _without_none(
            {
                "namespace": query.namespace,
                "bot_id": query.bot_id,
                "application_ids": query.application_id,
            }
        )
        dates = _without_none({"$gte": query.from_date, "$lte": query.to_date})
        if dates:
            filters["last_update_date"] = dates

        total = await self._users.count_documents(filters)
        cursor = (
            self._users.find(filters).sort("last_update_date", -1).skip(query.start).limit(query.size)
        )
        users = [UserReport(**doc) async for doc in cursor]
        return UserSearchQueryResult(
            total=total,
            start=query.start,
            end=query.start + len(users),
            users=users,
        )

    async def search_dialogs(self, query: DialogsSearchQuery) -> DialogReportQueryResult:
        filters = _without_none(
            {
                "namespace": query.namespace,
                "bot_id": query.bot_id,
                "player_ids": query.player_id,
                "_id": query.dialog_id,
                "actions.intent": query.intent,
            }
        )

        total = await self._dialogs.count_documents(filters)
        cursor = (
            self._dialogs.find(filters).sort("last_update_date", -1).skip(query.start).limit(query.size)
        )
        dialogs = [DialogReport(**doc) async for doc in cursor]
        return DialogReportQueryResult(
            total=total,
            start=query.start,
            end=query.start + len(dialogs),
            dialogs=dialogs,
        )


class DialogReportRecorder:
    """
    Story handler listener storing user and dialog reports after each turn.

    Storage failures are logged; they never fail the dispatch.
    """

    def __init__(self, reports: ReportService):
        self._reports = reports

    async def start_action(self, bus: BotBus, handler: StoryHandler) -> bool:
        return True

    async def end_action(self, bus: BotBus, handler: StoryHandler, result: Any) -> None:
        definition = bus.bot_definition
        now = datetime.now(UTC)
        user = UserReport(
            player_id=bus.user_id.id,
            namespace=definition.namespace,
            bot_id=definition.bot_id,
            application_ids=[bus.action.application_id],
            locale=bus.locale,
            last_update_date=now,
        )
        dialog = DialogReport(
            id=bus.dialog.id,
            namespace=definition.namespace,
            bot_id=definition.bot_id,
            player_ids=sorted(p.id for p in bus.dialog.player_ids),
            actions=[
                ActionReport(
                    player_id=a.player_id.id,
                    recipient_id=a.recipient_id.id,
                    application_id=a.application_id,
                    text=a.text,
                    intent=a.intent,
                    last_answer=a.is_terminal,
                    date=a.date,
                )
                for a in bus.dialog.all_actions()
            ],
            last_update_date=now,
        )
        try:
            await self._reports.save_user(user)
            await self._reports.save_dialog(dialog)
        except Exception as e:
            logger.error(f"[{definition.bot_id}] report of dialog {dialog.id} not saved: {e}", exc_info=True)
