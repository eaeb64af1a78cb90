"""
Dependency Injection for Palaver.

Provides singleton instances of the platform services. Stores backed by
the database (labels, reports, parse logs) are available once
`initialize_services()` connected to MongoDB.

Bots are declared by registering providers before startup:

    from palaver.app.dependencies import get_bot_repository
    get_bot_repository().register_bot_provider(StaticBotProvider(definition))
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from palaver import __version__
from palaver.admin.service import BotAdminService
from palaver.config import (
    AppSettings,
    ConfigurationService,
    ConnectorConfigurationLoader,
    FileConnectorConfigurationLoader,
    MemoryConnectorConfigurationLoader,
)
from palaver.connectors import RestConnectorProvider, admin_rest_connector_installer
from palaver.engine import BotRepository
from palaver.i18n import MongoLabelStore
from palaver.integrations.compiler import CompilerConfig, ScriptCompilerClient
from palaver.integrations.nlp import NlpClient, NlpConfig
from palaver.reports import DialogReportRecorder, ParseLogService, ReportService

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("PALAVER_SERVICE_NAME", "palaver"),
        environment=os.getenv("PALAVER_ENVIRONMENT", "development"),
        debug=os.getenv("PALAVER_DEBUG", "false").lower() == "true",
        # MongoDB
        mongodb_url=os.getenv("PALAVER_MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("PALAVER_MONGODB_DATABASE", "palaver"),
        # External services
        nlp_base_url=os.getenv("PALAVER_NLP_BASE_URL", "http://localhost:8888"),
        nlp_api_key=os.getenv("PALAVER_NLP_API_KEY"),
        compiler_base_url=os.getenv("PALAVER_COMPILER_BASE_URL", "http://localhost:8889"),
        # Bots
        default_namespace=os.getenv("PALAVER_DEFAULT_NAMESPACE", "app"),
        default_locale=os.getenv("PALAVER_DEFAULT_LOCALE", "en"),
        connectors_file=os.getenv("PALAVER_CONNECTORS_FILE"),
        admin_rest_default_base_url=os.getenv(
            "PALAVER_ADMIN_REST_DEFAULT_BASE_URL", "please set base url of the bot"
        ),
        install_admin_rest_connector=os.getenv("PALAVER_INSTALL_ADMIN_REST_CONNECTOR", "true").lower()
        == "true",
        parse_log_ttl_days=int(os.getenv("PALAVER_PARSE_LOG_TTL_DAYS", "7")),
        max_dialogs=int(os.getenv("PALAVER_MAX_DIALOGS", "10000")),
        dialog_idle_seconds=float(os.getenv("PALAVER_DIALOG_IDLE_SECONDS", "3600")),
    )


# Global instances (initialized on first access)
_config_service: Optional[ConfigurationService] = None
_nlp_client: Optional[NlpClient] = None
_compiler_client: Optional[ScriptCompilerClient] = None
_bot_repository: Optional[BotRepository] = None
_admin_service: Optional[BotAdminService] = None


def get_config_service() -> ConfigurationService:
    global _config_service
    if _config_service is None:
        settings = get_settings()
        _config_service = ConfigurationService(
            mongodb_url=settings.mongodb_url.get_secret_value(),
            database_name=settings.mongodb_database,
        )
    return _config_service


def get_nlp_client() -> NlpClient:
    global _nlp_client
    if _nlp_client is None:
        settings = get_settings()
        api_key = settings.nlp_api_key.get_secret_value() if settings.nlp_api_key else None
        _nlp_client = NlpClient(NlpConfig(base_url=settings.nlp_base_url, api_key=api_key))
    return _nlp_client


def get_compiler_client() -> ScriptCompilerClient:
    global _compiler_client
    if _compiler_client is None:
        _compiler_client = ScriptCompilerClient(CompilerConfig(base_url=get_settings().compiler_base_url))
    return _compiler_client


def _database():
    database = get_config_service().database
    if database is None:
        raise RuntimeError("MongoDB not connected - call initialize_services() first")
    return database


def get_report_service() -> ReportService:
    return ReportService(_database())


def get_parse_log_service() -> ParseLogService:
    return ParseLogService(_database(), ttl_days=get_settings().parse_log_ttl_days)


def get_bot_repository() -> BotRepository:
    """
    Get the bot repository.

    The REST connector provider is registered on creation.
    """
    global _bot_repository
    if _bot_repository is None:
        settings = get_settings()
        _bot_repository = BotRepository(
            get_config_service(),
            get_nlp_client(),
            default_locale=settings.default_locale,
            default_namespace=settings.default_namespace,
            max_dialogs=settings.max_dialogs,
            dialog_idle_seconds=settings.dialog_idle_seconds,
        )
        if not _bot_repository.connector_registry.has(RestConnectorProvider().connector_type):
            _bot_repository.register_connector_provider(RestConnectorProvider())
    return _bot_repository


def get_admin_service() -> BotAdminService:
    global _admin_service
    if _admin_service is None:
        settings = get_settings()
        database = _database()
        _admin_service = BotAdminService(
            get_config_service(),
            get_nlp_client(),
            get_compiler_client(),
            MongoLabelStore(database),
            ReportService(database),
            ParseLogService(database, ttl_days=settings.parse_log_ttl_days),
            default_rest_base_url=settings.admin_rest_default_base_url,
            bot_version=__version__,
        )
    return _admin_service


def get_namespace() -> str:
    """Namespace of admin requests: the platform default namespace."""
    return get_bot_repository().default_namespace


def get_connector_loader() -> ConnectorConfigurationLoader:
    settings = get_settings()
    if settings.connectors_file:
        logger.info(f"Loading connectors from {settings.connectors_file}")
        return FileConnectorConfigurationLoader(settings.connectors_file)
    return MemoryConnectorConfigurationLoader()


async def initialize_services(app: FastAPI) -> None:
    """
    Initialize all services on application startup.

    Called from FastAPI lifespan.
    """
    settings = get_settings()

    config_service = get_config_service()
    await config_service.connect()

    parse_logs = get_parse_log_service()
    await parse_logs.ensure_indexes()

    repository = get_bot_repository()
    repository.parse_logs = parse_logs
    repository.register_story_handler_listener(DialogReportRecorder(get_report_service()))

    connector_configurations = await get_connector_loader().get_configurations()
    await repository.install_bots(
        connector_configurations=connector_configurations,
        admin_rest_connector_installer=(
            admin_rest_connector_installer if settings.install_admin_rest_connector else None
        ),
        app=app,
    )
    repository.monitor.start()


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan.
    """
    global _config_service, _nlp_client, _compiler_client, _bot_repository, _admin_service

    if _bot_repository:
        await _bot_repository.monitor.stop()
        _bot_repository = None
    if _admin_service:
        await _admin_service.close()
        _admin_service = None
    if _nlp_client:
        await _nlp_client.close()
        _nlp_client = None
    if _compiler_client:
        await _compiler_client.close()
        _compiler_client = None
    if _config_service:
        await _config_service.close()
        _config_service = None
