"""
Admin reports: parse logs, users and dialogs.
"""

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
from .service import DialogReportRecorder, ParseLogService, ReportService, obfuscate

__all__ = [
    "ActionReport",
    "DialogReport",
    "DialogReportQueryResult",
    "DialogReportRecorder",
    "DialogsSearchQuery",
    "ParseLogService",
    "ParseRequestLog",
    "ParseRequestLogQuery",
    "ParseRequestLogQueryResult",
    "ParseRequestLogStat",
    "ParseRequestLogStatQuery",
    "ReportService",
    "UserReport",
    "UserSearchQuery",
    "UserSearchQueryResult",
    "obfuscate",
]
