"""
NLP service integration for Palaver.
"""

from .client import NlpClient, NlpConfig
from .schemas import (
    ApplicationDefinition,
    Classification,
    ClassifiedSentence,
    ClassifiedSentenceStatus,
    IntentDefinition,
    ParsedEntityValue,
    ParseQuery,
    ParseResult,
    QueryContext,
    SentencesQuery,
    SentencesResult,
)

__all__ = [
    "ApplicationDefinition",
    "Classification",
    "ClassifiedSentence",
    "ClassifiedSentenceStatus",
    "IntentDefinition",
    "NlpClient",
    "NlpConfig",
    "ParseQuery",
    "ParseResult",
    "ParsedEntityValue",
    "QueryContext",
    "SentencesQuery",
    "SentencesResult",
]
