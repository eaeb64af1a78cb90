"""
Configuration reconciliation.

Declared connector configurations come from code or files; operators may
later edit the persisted copy from the admin. These functions compute the
value to persist without ever touching the stored record.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .schemas import BotApplicationConfiguration, ConnectorConfiguration

logger = logging.getLogger(__name__)


def reconcile_connector_configuration(
    declared: ConnectorConfiguration,
    existing_by_connector_id: Mapping[str, BotApplicationConfiguration],
) -> ConnectorConfiguration:
    """
    Merge a declared connector configuration with its persisted counterpart.

    Structural fields (connector id, type, owner type) always come from the
    declaration. Operator-editable fields (name, base url, path, parameters)
    keep the persisted values. Parameters present only in the persisted
    record are never dropped.

    Args:
        declared: Configuration declared at startup
        existing_by_connector_id: Persisted configurations keyed by application id

    Returns:
        The merged configuration, or `declared` itself when nothing is persisted
    """
    existing = existing_by_connector_id.get(declared.connector_id)
    if existing is None:
        return declared

    return declared.model_copy(
        update={
            "name": existing.name or declared.name,
            "base_url": existing.base_url or declared.base_url,
            "path": existing.path or declared.path,
            "parameters": {**declared.parameters, **existing.parameters},
            "manually_modified": existing.manually_modified,
        }
    )


def merge_application_configuration(
    existing: BotApplicationConfiguration | None,
    incoming: BotApplicationConfiguration,
) -> BotApplicationConfiguration | None:
    """
    Decide what `update_if_not_manually_modified` writes.

    Returns:
        The document to write, or None when the write must be skipped
        because an operator edit would be clobbered for no structural change.
    """
    if existing is None:
        return incoming

    if not existing.manually_modified:
        return incoming.model_copy(update={"id": existing.id})

    if existing.structural_key() == incoming.structural_key():
        logger.debug(
            f"Configuration {existing.application_id}/{existing.bot_id} "
            "manually modified - skip update"
        )
        return None

    logger.info(
        f"Configuration {existing.application_id}/{existing.bot_id} manually modified - "
        "updating structural fields only"
    )
    return existing.model_copy(
        update={
            field: getattr(incoming, field)
            for field in BotApplicationConfiguration.STRUCTURAL_FIELDS
        }
    )
