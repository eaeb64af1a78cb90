"""
Configuration monitor.

Operators edit application configurations from the admin while bots run.
The monitor reloads the persisted configurations of every installed bot,
either on demand with `refresh()` or periodically once `start()`ed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from palaver.config.service import BotConfigurationStore

    from .bot import Bot

logger = logging.getLogger(__name__)


class ConfigurationMonitor:
    def __init__(self, store: BotConfigurationStore, interval_seconds: float = 60.0):
        self.store = store
        self.interval_seconds = interval_seconds
        self._bots: dict[str, Bot] = {}
        self._task: asyncio.Task[None] | None = None

    def monitor(self, bot: Bot) -> None:
        """Watch the configurations of a bot. Idempotent."""
        if bot.bot_id not in self._bots:
            logger.debug(f"Monitoring configurations of {bot.bot_id}")
        self._bots[bot.bot_id] = bot

    @property
    def monitored_bots(self) -> list[Bot]:
        return list(self._bots.values())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> dict[str, list[str]]:
        """
        Reload configurations of every monitored bot.

        Returns:
            Changed application ids, by bot id
        """
        changes: dict[str, list[str]] = {}
        for bot_id, bot in list(self._bots.items()):
            confs = await self.store.get_configurations_by_bot_id(bot_id)
            changed = bot.update_configurations(confs)
            if changed:
                changes[bot_id] = changed
        return changes

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="configuration_monitor")
        logger.info(f"Configuration monitor started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Configuration monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Configuration refresh failed: {e}", exc_info=True)
