"""
Palaver admin: configuration, intents, reports and the talk test feature.

The FastAPI router lives in `palaver.admin.api`.
"""

from .models import (
    BotDialogRequest,
    BotDialogResponse,
    BotIntent,
    BotIntentSearchRequest,
    BotStoryDefinition,
    CreateBotIntentRequest,
    SentenceReport,
    UpdateBotIntentRequest,
)
from .service import (
    TECHNICAL_ERROR_TEXT,
    BotAdminService,
    ScriptCompilationError,
    UnauthorizedError,
)

__all__ = [
    "TECHNICAL_ERROR_TEXT",
    "BotAdminService",
    "BotDialogRequest",
    "BotDialogResponse",
    "BotIntent",
    "BotIntentSearchRequest",
    "BotStoryDefinition",
    "CreateBotIntentRequest",
    "ScriptCompilationError",
    "SentenceReport",
    "UnauthorizedError",
    "UpdateBotIntentRequest",
]
