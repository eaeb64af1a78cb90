"""
Pydantic schemas of the admin reports.

Parse logs record every NLP parse request; user and dialog reports are
read models of the conversations held by installed bots.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from pydantic import BaseModel, ConfigDict, Field

from palaver.integrations.nlp.schemas import ParseQuery, ParseResult


def _utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Parse logs
# =============================================================================


class ParseRequestLog(BaseModel):
    application_id: str
    query: ParseQuery
    result: ParseResult | None = None
    duration_ms: int = 0
    error: bool = False
    date: datetime = Field(default_factory=_utc_now)

    @property
    def text(self) -> str:
        if self.result and self.result.retained_query:
            return self.result.retained_query
        return self.query.queries[0] if self.query.queries else ""


class ParseRequestLogQuery(BaseModel):
    application_id: str
    language: str
    search: str | None = None
    only_exact_match: bool = False
    since_date: datetime | None = None
    until_date: datetime | None = None
    client_id: str | None = None
    client_device: str | None = None
    start: int = 0
    size: int = 20


class ParseRequestLogQueryResult(BaseModel):
    total: int = 0
    logs: list[ParseRequestLog] = Field(default_factory=list)


class ParseRequestLogStatQuery(BaseModel):
    application_id: str
    language: str
    intent: str | None = None


class ParseRequestLogStat(BaseModel):
    """Aggregate of one day of parse requests."""

    day: date
    error: int
    count: int
    duration: float | None = None
    intent_probability: float | None = None
    entities_probability: float | None = None


# =============================================================================
# Users & dialogs
# =============================================================================


class UserReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="_id")
    namespace: str
    bot_id: str
    application_ids: list[str] = Field(default_factory=list)
    locale: str | None = None
    creation_date: datetime = Field(default_factory=_utc_now)
    last_update_date: datetime = Field(default_factory=_utc_now)


class UserSearchQuery(BaseModel):
    namespace: str
    bot_id: str | None = None
    application_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    start: int = 0
    size: int = 20


class UserSearchQueryResult(BaseModel):
    total: int = 0
    start: int = 0
    end: int = 0
    users: list[UserReport] = Field(default_factory=list)


class ActionReport(BaseModel):
    player_id: str
    recipient_id: str
    application_id: str
    text: str | None = None
    intent: str | None = None
    last_answer: bool = False
    date: datetime


class DialogReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    namespace: str
    bot_id: str
    player_ids: list[str] = Field(default_factory=list)
    actions: list[ActionReport] = Field(default_factory=list)
    last_update_date: datetime = Field(default_factory=_utc_now)


class DialogsSearchQuery(BaseModel):
    namespace: str
    bot_id: str | None = None
    player_id: str | None = None
    dialog_id: str | None = None
    intent: str | None = None
    start: int = 0
    size: int = 20


class DialogReportQueryResult(BaseModel):
    total: int = 0
    start: int = 0
    end: int = 0
    dialogs: list[DialogReport] = Field(default_factory=list)
