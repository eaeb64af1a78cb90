"""
I18n label keys for Palaver.

Story handlers turn default labels into I18nLabelKeys so that answers
can be translated by operators later. The label provider used while a
story is being handled is bound per call with a ContextVar, so
concurrent dispatches never see each other's provider.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_KEY_MAX_LENGTH = 80
_NON_WORD = re.compile(r"[^\w]+", re.UNICODE)


def key_from_default_label(label: str) -> str:
    """
    Build a stable label key from a default label.

    Example:
        >>> key_from_default_label("Hello, how are you?")
        'hello_how_are_you'
    """
    return _NON_WORD.sub("_", str(label).strip().lower()).strip("_")[:_KEY_MAX_LENGTH]


@dataclass(frozen=True)
class I18nLabelKey:
    """A translatable label."""

    key: str
    namespace: str
    category: str
    default_label: str
    args: tuple[Any, ...] = field(default_factory=tuple)

    def format(self) -> str:
        """Default label with positional {0}-style arguments applied."""
        if not self.args:
            return self.default_label
        return self.default_label.format(*self.args)

    def __str__(self) -> str:
        return self.format()


@runtime_checkable
class I18nKeyProvider(Protocol):
    def i18n_key_from_label(self, default_label: str, args: Sequence[Any] = ()) -> I18nLabelKey: ...


_current_provider: ContextVar[I18nKeyProvider | None] = ContextVar(
    "palaver_i18n_provider", default=None
)


def current_i18n_provider() -> I18nKeyProvider | None:
    """The provider bound to the running dispatch, if any."""
    return _current_provider.get()


@contextmanager
def bind_i18n_provider(provider: I18nKeyProvider) -> Iterator[I18nKeyProvider]:
    """Bind a label provider for the duration of the block."""
    token = _current_provider.set(provider)
    try:
        yield provider
    finally:
        _current_provider.reset(token)


# =============================================================================
# Label storage
# =============================================================================


@runtime_checkable
class LabelStore(Protocol):
    async def save_if_not_exists(self, key: I18nLabelKey, locale: str) -> bool: ...


class MongoLabelStore:
    """
    Label store backed by the 'i18n_labels' collection.

    One document per label key, translations under `i18n.<locale>`.
    """

    def __init__(self, database):
        self._collection = database.i18n_labels

    async def save_if_not_exists(self, key: I18nLabelKey, locale: str) -> bool:
        """
        Save the default label for a locale unless a translation exists.

        Returns:
            True if the label was written
        """
        from pymongo.errors import DuplicateKeyError

        field_name = f"i18n.{locale}"
        try:
            result = await self._collection.update_one(
                {"_id": key.key, field_name: {"$exists": False}},
                {
                    "$set": {field_name: key.default_label},
                    "$setOnInsert": {"namespace": key.namespace, "category": key.category},
                },
                upsert=True,
            )
        except DuplicateKeyError:
            return False

        written = result.upserted_id is not None or result.modified_count > 0
        if written:
            logger.debug(f"Saved label {key.key} for locale {locale}")
        return written
