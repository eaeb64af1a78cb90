"""
Bot installation.

BotInstaller installs one bot against every declared connector
configuration:

    1. resolve the connector provider
    2. reconcile the declaration with persisted state
    3. build the connector
    4. offer the bot namespace as the platform default
    5. persist the application configuration
    6. register the connector on the routing surface
    7. notify the configuration monitor
    8. install the companion connector returned by the auxiliary installer

An unknown connector type aborts the whole run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from palaver.config.reconcile import reconcile_connector_configuration
from palaver.config.schemas import BotApplicationConfiguration, ConnectorConfiguration

if TYPE_CHECKING:
    from palaver.config.service import BotConfigurationStore
    from palaver.connectors.registry import ConnectorRegistry

    from .bot import Bot
    from .monitor import ConfigurationMonitor
    from .routing import BotRouter

logger = logging.getLogger(__name__)

# Returns the companion connector of a saved application configuration, if any
RestConnectorInstaller = Callable[[BotApplicationConfiguration], "ConnectorConfiguration | None"]


class DefaultNamespace:
    """
    Platform default namespace.

    The first installed bot sets it; later offers are ignored.
    """

    def __init__(self, fallback: str = "app"):
        self._fallback = fallback
        self._value: str | None = None
        self._lock = threading.Lock()

    def offer(self, namespace: str) -> bool:
        """Set the namespace if still unset. Returns True if it was taken."""
        with self._lock:
            if self._value is not None:
                return False
            self._value = namespace
        logger.info(f"Default namespace set to {namespace}")
        return True

    @property
    def value(self) -> str:
        return self._value if self._value is not None else self._fallback

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def __str__(self) -> str:
        return self.value


class BotInstaller:
    """
    Installs bots on the routing surface.

    Example:
        installer = BotInstaller(registry, store, router, monitor=monitor)
        await installer.install(bot, [ConnectorConfiguration(connector_id="web", type="rest")])
    """

    def __init__(
        self,
        connector_registry: ConnectorRegistry,
        store: BotConfigurationStore,
        router: BotRouter,
        *,
        monitor: ConfigurationMonitor | None = None,
        default_namespace: DefaultNamespace | None = None,
    ):
        self.connector_registry = connector_registry
        self.store = store
        self.router = router
        self.monitor = monitor
        self.default_namespace = default_namespace or DefaultNamespace()

    async def load_existing(self, bot_id: str) -> dict[str, BotApplicationConfiguration]:
        """Persisted configurations of a bot, keyed by application id."""
        existing: dict[str, BotApplicationConfiguration] = {}
        for conf in await self.store.get_configurations_by_bot_id(bot_id):
            if conf.application_id in existing:
                logger.warning(
                    f"[{bot_id}] duplicate persisted configuration for application "
                    f"{conf.application_id} ({conf.id}) - keeping {existing[conf.application_id].id}"
                )
                continue
            existing[conf.application_id] = conf
        return existing

    async def install(
        self,
        bot: Bot,
        declared_configurations: Iterable[ConnectorConfiguration],
        existing_by_application_id: Mapping[str, BotApplicationConfiguration] | None = None,
        rest_connector_installer: RestConnectorInstaller | None = None,
    ) -> list[BotApplicationConfiguration]:
        """
        Install a bot for each declared connector configuration.

        Returns:
            The application configurations now in effect, in installation order

        Raises:
            ConnectorProviderNotFoundError: If a connector type has no provider
        """
        if existing_by_application_id is None:
            existing_by_application_id = await self.load_existing(bot.bot_id)

        installed: list[BotApplicationConfiguration] = []
        for declared in declared_configurations:
            saved = await self._install_connector(bot, declared, existing_by_application_id)
            installed.append(saved)

            if self.monitor is not None:
                self.monitor.monitor(bot)

            if rest_connector_installer is None:
                continue
            companion = rest_connector_installer(saved)
            if companion is not None:
                logger.info(f"[{bot.bot_id}] installing companion connector {companion.connector_id}")
                installed.append(
                    await self._install_connector(
                        bot, companion, existing_by_application_id, offer_namespace=False
                    )
                )

        return installed

    async def _install_connector(
        self,
        bot: Bot,
        declared: ConnectorConfiguration,
        existing_by_application_id: Mapping[str, BotApplicationConfiguration],
        *,
        offer_namespace: bool = True,
    ) -> BotApplicationConfiguration:
        definition = bot.definition
        provider = self.connector_registry.resolve(declared.type)
        conf = reconcile_connector_configuration(declared, existing_by_application_id)
        connector = provider.connector(conf)

        if offer_namespace:
            self.default_namespace.offer(definition.namespace)

        saved = await self._save_configuration(bot, conf)
        await self.router.register_connector(bot, connector, saved)
        return saved

    async def _save_configuration(
        self,
        bot: Bot,
        conf: ConnectorConfiguration,
    ) -> BotApplicationConfiguration:
        definition = bot.definition
        application_conf = BotApplicationConfiguration(
            application_id=conf.application_id_for(definition.bot_id),
            bot_id=definition.bot_id,
            namespace=definition.namespace,
            nlp_model=definition.nlp_model_name,
            connector_type=conf.type,
            owner_connector_type=conf.owner_connector_type,
            name=conf.name_for(definition.bot_id),
            base_url=conf.base_url,
            parameters=dict(conf.parameters),
            path=conf.path or None,
            manually_modified=conf.manually_modified,
        )
        saved = await self.store.update_if_not_manually_modified(application_conf)
        bot.configurations[saved.application_id] = saved
        logger.debug(f"[{definition.bot_id}] saved configuration {saved.application_id}")
        return saved
