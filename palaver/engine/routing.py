"""
Shared routing surface for installed bots.

Every (bot, connector) pair is registered here. Connectors install their
HTTP routes through a ConnectorController; auxiliary services add theirs
with `register_services()`. `deploy()` mounts everything on a FastAPI
application, so it must be called once all registrations are done.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, Response

from .dialog import Action, Dialog, PlayerId, UserInterfaceType

if TYPE_CHECKING:
    from palaver.config.schemas import BotApplicationConfiguration
    from palaver.connectors.base import Connector

    from .bot import Bot

logger = logging.getLogger(__name__)

# Health check: returns True when the platform can serve
HealthCheck = Callable[[], Awaitable[bool]]
ServiceInstaller = Callable[[APIRouter], None]


# Dialogs kept in memory per controller, and how long an idle one survives
DEFAULT_MAX_DIALOGS = 10_000
DEFAULT_DIALOG_IDLE_SECONDS = 3600.0


async def _always_healthy() -> bool:
    return True


@dataclass
class _DialogSlot:
    """A user dialog and the lock serializing its turns."""

    dialog: Dialog
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_used: float = field(default_factory=time.monotonic)


class ConnectorController:
    """
    Binding of one connector to one bot.

    Given to `Connector.register()`; the connector uses it to add its
    routes and to hand inbound actions to the bot.

    Turns of one user are handled one at a time. Dialogs are kept in
    least-recently-used order; idle ones and the oldest beyond
    `max_dialogs` are dropped, unless a turn is in progress.
    """

    def __init__(
        self,
        bot: Bot,
        connector: Connector,
        router: BotRouter,
        configuration: BotApplicationConfiguration | None = None,
        *,
        max_dialogs: int = DEFAULT_MAX_DIALOGS,
        dialog_idle_seconds: float = DEFAULT_DIALOG_IDLE_SECONDS,
    ):
        self.bot = bot
        self.connector = connector
        self.max_dialogs = max_dialogs
        self.dialog_idle_seconds = dialog_idle_seconds
        self._configuration = configuration
        self._router = router
        self._slots: OrderedDict[str, _DialogSlot] = OrderedDict()

    @property
    def application_id(self) -> str:
        if self._configuration is not None:
            return self._configuration.application_id
        return self.bot.definition.bot_id

    @property
    def configuration(self) -> BotApplicationConfiguration | None:
        """
        Latest known configuration of the application.

        Reflects operator edits picked up by the configuration monitor.
        Routes are mounted at install time and keep their original path.
        """
        if self._configuration is None:
            return None
        return self.bot.configurations.get(self._configuration.application_id, self._configuration)

    @property
    def dialog_count(self) -> int:
        return len(self._slots)

    def add_route(
        self,
        path: str,
        endpoint: Callable[..., Any],
        methods: list[str],
        **kwargs: Any,
    ) -> None:
        """Add an HTTP route to the shared router."""
        self._router.router.add_api_route(path, endpoint, methods=methods, **kwargs)
        logger.debug(f"[{self.bot.definition.bot_id}] route {methods} {path}")

    def dialog_for(self, user_id: PlayerId) -> Dialog:
        return self._slot_for(user_id).dialog

    def _slot_for(self, user_id: PlayerId) -> _DialogSlot:
        slot = self._slots.get(user_id.id)
        if slot is None:
            slot = _DialogSlot(Dialog(player_ids=frozenset({user_id})))
            self._slots[user_id.id] = slot
            self._evict()
        else:
            self._slots.move_to_end(user_id.id)
        slot.last_used = time.monotonic()
        return slot

    def _evict(self) -> None:
        deadline = time.monotonic() - self.dialog_idle_seconds
        excess = len(self._slots) - self.max_dialogs
        # Oldest first; the slot just added is last and never evicted here
        for user_id, slot in list(self._slots.items())[:-1]:
            if slot.lock.locked():
                continue
            if excess > 0 or slot.last_used < deadline:
                del self._slots[user_id]
                excess -= 1
            else:
                break
        if excess > 0:
            logger.warning(
                f"[{self.application_id}] {len(self._slots)} dialogs kept, "
                f"above the limit of {self.max_dialogs}: all are busy"
            )

    async def handle(
        self,
        action: Action,
        *,
        user_interface_type: UserInterfaceType = UserInterfaceType.TEXT_CHAT,
        locale: str | None = None,
    ) -> list[Action]:
        """Dispatch an inbound action and return the bot answers."""
        slot = self._slot_for(action.player_id)
        async with slot.lock:
            answers = await self.bot.handle(
                action,
                slot.dialog,
                self.connector,
                user_interface_type=user_interface_type,
                locale=locale,
            )
        slot.last_used = time.monotonic()
        return answers

    def __repr__(self) -> str:
        return (
            f"ConnectorController(bot={self.bot.definition.bot_id}, "
            f"connector={self.connector.connector_type}, application={self.application_id})"
        )


class BotRouter:
    """
    Routing surface shared by all installed bots.

    Example:
        router = BotRouter(healthcheck_handler=nlp_client.healthcheck)
        await router.register_connector(bot, connector)
        router.register_services("_handler_0", install_metrics_routes)
        app = router.deploy()
    """

    def __init__(
        self,
        healthcheck_handler: HealthCheck | None = None,
        *,
        max_dialogs: int = DEFAULT_MAX_DIALOGS,
        dialog_idle_seconds: float = DEFAULT_DIALOG_IDLE_SECONDS,
    ):
        self.router = APIRouter()
        self.max_dialogs = max_dialogs
        self.dialog_idle_seconds = dialog_idle_seconds
        self.healthcheck_handler: HealthCheck = healthcheck_handler or _always_healthy
        self.app: FastAPI | None = None
        self._controllers: list[ConnectorController] = []
        self._services: dict[str, ServiceInstaller] = {}

    async def register_connector(
        self,
        bot: Bot,
        connector: Connector,
        configuration: BotApplicationConfiguration | None = None,
    ) -> ConnectorController:
        """Register a connector for a bot and let it install its routes."""
        if self.deployed:
            raise RuntimeError("Cannot register a connector after deploy()")

        controller = ConnectorController(
            bot,
            connector,
            self,
            configuration,
            max_dialogs=self.max_dialogs,
            dialog_idle_seconds=self.dialog_idle_seconds,
        )
        await connector.register(controller)
        self._controllers.append(controller)
        logger.info(
            f"Registered connector {connector.connector_type} "
            f"for bot {bot.definition.bot_id} ({controller.application_id})"
        )
        return controller

    def register_services(self, name: str, handler: ServiceInstaller) -> None:
        """
        Add auxiliary routes.

        Raises:
            ValueError: If a service with this name is already registered
        """
        if name in self._services:
            raise ValueError(f"Service already registered: {name}")
        handler(self.router)
        self._services[name] = handler
        logger.debug(f"Registered services: {name}")

    @property
    def controllers(self) -> list[ConnectorController]:
        return list(self._controllers)

    @property
    def installed_connectors(self) -> list[tuple[Bot, Connector]]:
        return [(c.bot, c.connector) for c in self._controllers]

    @property
    def service_names(self) -> list[str]:
        return list(self._services.keys())

    @property
    def deployed(self) -> bool:
        return self.app is not None

    def controllers_for(self, bot_id: str) -> list[ConnectorController]:
        return [c for c in self._controllers if c.bot.definition.bot_id == bot_id]

    async def healthcheck(self) -> Response:
        """GET /healthcheck: 200 when healthy, 500 otherwise."""
        try:
            healthy = await self.healthcheck_handler()
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            healthy = False
        return Response(status_code=200 if healthy else 500)

    def deploy(self, app: FastAPI | None = None) -> FastAPI:
        """Mount the shared router on `app` (a new application by default)."""
        if self.app is not None:
            logger.warning("BotRouter already deployed")
            return self.app

        app = app or FastAPI(title="Palaver bots")
        self.router.add_api_route("/healthcheck", self.healthcheck, methods=["GET"])
        app.include_router(self.router)
        self.app = app
        logger.info(
            f"Deployed {len(self._controllers)} connector(s) and "
            f"{len(self._services)} service(s)"
        )
        return app
