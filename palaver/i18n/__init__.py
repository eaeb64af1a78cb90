"""
Palaver I18n

Label keys and per-call label provider binding.
"""

from .labels import (
    I18nKeyProvider,
    I18nLabelKey,
    LabelStore,
    MongoLabelStore,
    bind_i18n_provider,
    current_i18n_provider,
    key_from_default_label,
)

__all__ = [
    "I18nKeyProvider",
    "I18nLabelKey",
    "LabelStore",
    "MongoLabelStore",
    "bind_i18n_provider",
    "current_i18n_provider",
    "key_from_default_label",
]
