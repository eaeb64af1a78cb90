"""
Connector configuration loaders.

Declared connector configurations can live in a JSON file (deployments)
or in memory (tests, embedded bots). Both expose the same coroutine so
the bot repository does not care where they come from.

File Format:
    [
        {
            "connector_id": "web",
            "type": "rest",
            "path": "/io/web",
            "parameters": {"token": "..."}
        }
    ]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from .schemas import ConnectorConfiguration

logger = logging.getLogger(__name__)


class ConnectorConfigurationLoader(Protocol):
    async def get_configurations(self) -> list[ConnectorConfiguration]: ...


class FileConnectorConfigurationLoader:
    """Loads declared connector configurations from a JSON file."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    async def get_configurations(self) -> list[ConnectorConfiguration]:
        if not self._path.exists():
            logger.warning(f"Connector configuration file not found: {self._path}")
            return []

        data = json.loads(self._path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = [data]

        configurations = [ConnectorConfiguration.model_validate(item) for item in data]
        logger.info(f"Loaded {len(configurations)} connector configuration(s) from {self._path}")
        return configurations


class MemoryConnectorConfigurationLoader:
    """In-memory loader for tests and embedded bots."""

    def __init__(self, configurations: list[ConnectorConfiguration] | None = None):
        self._configurations = list(configurations or [])

    def add(self, configuration: ConnectorConfiguration) -> None:
        self._configurations.append(configuration)

    async def get_configurations(self) -> list[ConnectorConfiguration]:
        return list(self._configurations)
