"""
Admin API for Palaver.

Every request acts within a namespace (the platform default namespace);
configurations of other namespaces answer 401.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from palaver.app.dependencies import get_admin_service, get_namespace
from palaver.config.schemas import BotApplicationConfiguration
from palaver.integrations.nlp.schemas import IntentDefinition
from palaver.reports.schemas import (
    DialogReportQueryResult,
    DialogsSearchQuery,
    ParseRequestLogQuery,
    ParseRequestLogQueryResult,
    ParseRequestLogStat,
    ParseRequestLogStatQuery,
    UserSearchQuery,
    UserSearchQueryResult,
)

from .models import (
    BotDialogRequest,
    BotDialogResponse,
    BotIntent,
    BotIntentSearchRequest,
    CreateBotIntentRequest,
    UpdateBotIntentRequest,
)
from .service import BotAdminService, ScriptCompilationError, UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _unauthorized() -> HTTPException:
    return HTTPException(status_code=401, detail="Unauthorized")


# =============================================================================
# Configurations
# =============================================================================


@router.get("/configuration/bots/{bot_id}")
async def get_bot_configurations(
    bot_id: str,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> list[BotApplicationConfiguration]:
    return await admin.get_bot_configurations_by_namespace_and_bot_id(namespace, bot_id)


@router.get("/configuration/bot/{configuration_id}")
async def get_bot_configuration(
    configuration_id: str,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> BotApplicationConfiguration:
    try:
        return await admin.get_bot_configuration(configuration_id, namespace)
    except UnauthorizedError:
        raise _unauthorized()


@router.post("/configuration/bot")
async def save_bot_configuration(
    conf: BotApplicationConfiguration,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> BotApplicationConfiguration:
    if conf.namespace != namespace:
        raise _unauthorized()
    existing = await admin.get_bot_configuration_by_id(conf.id)
    if existing is not None and existing.namespace != namespace:
        raise _unauthorized()
    return await admin.save_application_configuration(conf)


@router.delete("/configuration/bot/{configuration_id}")
async def delete_bot_configuration(
    configuration_id: str,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> bool:
    try:
        conf = await admin.get_bot_configuration(configuration_id, namespace)
    except UnauthorizedError:
        raise _unauthorized()
    await admin.delete_application_configuration(conf)
    return True


# =============================================================================
# Intents
# =============================================================================


@router.post("/bot/intents/search")
async def search_bot_intents(
    request: BotIntentSearchRequest,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> list[BotIntent]:
    return await admin.load_bot_intents(request.model_copy(update={"namespace": namespace}))


@router.post("/bot/intent/new")
async def create_bot_intent(
    request: CreateBotIntentRequest,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> IntentDefinition | None:
    try:
        return await admin.create_bot_intent(namespace, request)
    except ScriptCompilationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/bot/intent")
async def update_bot_intent(
    request: UpdateBotIntentRequest,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> IntentDefinition | None:
    try:
        return await admin.update_bot_intent(namespace, request)
    except ScriptCompilationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/bot/story/{story_definition_id}")
async def delete_bot_intent(
    story_definition_id: str,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> bool:
    return await admin.delete_bot_intent(namespace, story_definition_id)


# =============================================================================
# Reports
# =============================================================================


@router.post("/users/search")
async def search_users(
    query: UserSearchQuery,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> UserSearchQueryResult:
    return await admin.search_users(query.model_copy(update={"namespace": namespace}))


@router.post("/dialogs/search")
async def search_dialogs(
    query: DialogsSearchQuery,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> DialogReportQueryResult:
    return await admin.search_dialogs(query.model_copy(update={"namespace": namespace}))


def _check_log_application(application_id: str, namespace: str) -> None:
    # Parse logs are keyed "namespace:model"
    if not application_id.startswith(f"{namespace}:"):
        raise _unauthorized()


@router.post("/logs/search")
async def search_logs(
    query: ParseRequestLogQuery,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> ParseRequestLogQueryResult:
    _check_log_application(query.application_id, namespace)
    return await admin.search_logs(query)


@router.post("/logs/stats")
async def log_stats(
    query: ParseRequestLogStatQuery,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> list[ParseRequestLogStat]:
    _check_log_application(query.application_id, namespace)
    return await admin.log_stats(query)


# =============================================================================
# Talk
# =============================================================================


@router.post("/test/talk")
async def talk(
    request: BotDialogRequest,
    admin: BotAdminService = Depends(get_admin_service),
    namespace: str = Depends(get_namespace),
) -> BotDialogResponse:
    try:
        return await admin.talk(request.model_copy(update={"namespace": namespace}))
    except UnauthorizedError:
        raise _unauthorized()
