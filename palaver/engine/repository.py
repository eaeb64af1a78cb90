"""
Bot Repository for Palaver.

Entry point of the platform: collects bot providers, connector
providers and story handler listeners, then `install_bots()` wires
everything on a BotRouter and deploys it.

Example:
    repository = BotRepository(store, nlp_client)
    repository.register_bot_provider(StaticBotProvider(definition))
    repository.register_connector_provider(RestConnectorProvider())
    app = await repository.install_bots(
        connector_configurations=[ConnectorConfiguration(connector_id="web", type="rest")],
        admin_rest_connector_installer=admin_rest_connector_installer,
    )
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from palaver.config.schemas import ConnectorConfiguration
from palaver.connectors.registry import ConnectorRegistry, get_connector_registry

from .bot import Bot, NlpIntentResolver, StoryHandlerListener
from .installer import BotInstaller, DefaultNamespace, RestConnectorInstaller
from .monitor import ConfigurationMonitor
from .routing import DEFAULT_DIALOG_IDLE_SECONDS, DEFAULT_MAX_DIALOGS, BotRouter, ServiceInstaller

if TYPE_CHECKING:
    from fastapi import FastAPI

    from palaver.config.service import BotConfigurationStore
    from palaver.connectors.base import ConnectorProvider
    from palaver.integrations.nlp import NlpClient
    from palaver.reports import ParseLogService

    from .definition import BotDefinition, BotProvider

logger = logging.getLogger(__name__)


class ConfigurationIntegrityError(Exception):
    """
    Raised when declared connector configurations share a connector id.

    Nothing is installed when this is raised.
    """

    def __init__(self, duplicates: dict[str, list[ConnectorConfiguration]]):
        self.duplicates = duplicates
        details = "; ".join(
            f"{connector_id}: {[c.type for c in confs]}" for connector_id, confs in duplicates.items()
        )
        super().__init__(f"At least two configurations have the same connector id: {details}")


def check_connector_id_integrity(configurations: Iterable[ConnectorConfiguration]) -> None:
    """
    Raises:
        ConfigurationIntegrityError: If a non-blank connector id is declared twice
    """
    groups: dict[str, list[ConnectorConfiguration]] = defaultdict(list)
    for conf in configurations:
        groups[conf.connector_id].append(conf)

    duplicates = {
        connector_id: confs
        for connector_id, confs in groups.items()
        if connector_id.strip() and len(confs) > 1
    }
    if duplicates:
        raise ConfigurationIntegrityError(duplicates)


class BotRepository:
    """
    Orchestrates bot installation.

    Args:
        store: Persistence of application configurations
        nlp_client: NLP service, used for application checks, intent
            resolution and the default health check
        connector_registry: Connector providers (global registry by default)
        router: Shared routing surface
        monitor: Configuration monitor of installed bots
        default_locale: Locale of the NLP applications created at install
        default_namespace: Fallback of the platform default namespace
        parse_logs: Store of the NLP parse requests made while dispatching
        max_dialogs: Dialogs kept in memory per connector
        dialog_idle_seconds: Idle time after which a dialog may be dropped
    """

    def __init__(
        self,
        store: BotConfigurationStore,
        nlp_client: NlpClient | None = None,
        *,
        connector_registry: ConnectorRegistry | None = None,
        router: BotRouter | None = None,
        monitor: ConfigurationMonitor | None = None,
        default_locale: str = "en",
        default_namespace: str = "app",
        parse_logs: ParseLogService | None = None,
        max_dialogs: int = DEFAULT_MAX_DIALOGS,
        dialog_idle_seconds: float = DEFAULT_DIALOG_IDLE_SECONDS,
    ):
        self.store = store
        self.nlp_client = nlp_client
        self.connector_registry = connector_registry or get_connector_registry()
        self.router = router or BotRouter(
            healthcheck_handler=self._nlp_healthcheck,
            max_dialogs=max_dialogs,
            dialog_idle_seconds=dialog_idle_seconds,
        )
        self.monitor = monitor or ConfigurationMonitor(store)
        self.default_locale = default_locale
        self._default_namespace = DefaultNamespace(default_namespace)
        self.parse_logs = parse_logs
        self._bot_providers: list[BotProvider] = []
        self._listeners: list[StoryHandlerListener] = []
        self._bots: list[Bot] = []

    # =========================================================================
    # Registration
    # =========================================================================

    def register_bot_provider(self, provider: BotProvider) -> None:
        if provider not in self._bot_providers:
            self._bot_providers.append(provider)

    def register_connector_provider(self, provider: ConnectorProvider, *, replace: bool = False) -> None:
        self.connector_registry.register(provider, replace=replace)

    def register_story_handler_listener(self, listener: StoryHandlerListener) -> None:
        self._listeners.append(listener)

    @property
    def bots(self) -> list[Bot]:
        return list(self._bots)

    @property
    def default_namespace(self) -> str:
        return self._default_namespace.value

    # =========================================================================
    # Installation
    # =========================================================================

    async def install_bots(
        self,
        router_handlers: Sequence[ServiceInstaller] = (),
        connector_configurations: Sequence[ConnectorConfiguration] | None = None,
        admin_rest_connector_installer: RestConnectorInstaller | None = None,
        app: FastAPI | None = None,
    ) -> FastAPI:
        """
        Install every registered bot and deploy the routing surface.

        Returns:
            The FastAPI application the routes were mounted on

        Raises:
            ConfigurationIntegrityError: If two declared connectors share an id
            ConnectorProviderNotFoundError: If a connector type has no provider
        """
        configurations = list(connector_configurations or ())
        if not configurations:
            logger.info("No connector declared - installing the placeholder connector")
            configurations = [ConnectorConfiguration.placeholder()]

        check_connector_id_integrity(configurations)

        definitions = [provider.bot_definition() for provider in self._bot_providers]

        installer = BotInstaller(
            self.connector_registry,
            self.store,
            self.router,
            monitor=self.monitor,
            default_namespace=self._default_namespace,
        )
        intent_resolver = (
            NlpIntentResolver(self.nlp_client, self.parse_logs) if self.nlp_client is not None else None
        )

        for definition in definitions:
            bot = Bot(definition, listeners=self._listeners, intent_resolver=intent_resolver)
            await installer.install(
                bot,
                configurations,
                rest_connector_installer=admin_rest_connector_installer,
            )
            self._bots.append(bot)
            logger.info(f"Installed bot {definition.bot_id} ({len(configurations)} connector(s))")

        await self._create_nlp_applications(definitions)

        for index, handler in enumerate(router_handlers):
            self.router.register_services(f"_handler_{index}", handler)

        return self.router.deploy(app)

    async def _create_nlp_applications(self, definitions: Iterable[BotDefinition]) -> None:
        if self.nlp_client is None:
            return

        models = dict.fromkeys((d.namespace, d.nlp_model_name) for d in definitions)
        for namespace, model in models:
            try:
                application = await self.nlp_client.create_application(
                    namespace, model, self.default_locale
                )
                logger.info(
                    f"NLP application initialized {namespace}:{model} "
                    f"with locales {application.supported_locales}"
                )
            except Exception as e:
                logger.error(f"NLP application {namespace}:{model} not initialized: {e}", exc_info=True)

    async def _nlp_healthcheck(self) -> bool:
        if self.nlp_client is None:
            return True
        return await self.nlp_client.healthcheck()
