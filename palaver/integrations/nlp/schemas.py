"""
Pydantic schemas of the NLP service API.

Applications (NLP models) and intents belong to a namespace. Sentences
are classified against an application and feed the model training.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Applications & intents
# =============================================================================


class ApplicationDefinition(BaseModel):
    """An NLP application (model) of a namespace."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, alias="_id")
    name: str
    namespace: str
    supported_locales: list[str] = Field(default_factory=list)
    intents: list[str] = Field(default_factory=list, description="Intent ids")


class CreateApplicationRequest(BaseModel):
    namespace: str
    name: str
    locale: str


class IntentDefinition(BaseModel):
    """An intent, shared by the applications listed in `applications`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, alias="_id")
    name: str
    namespace: str
    applications: list[str] = Field(default_factory=list, description="Application ids")
    entities: list[str] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}:{self.name}"


# =============================================================================
# Sentences
# =============================================================================


class ClassifiedSentenceStatus(str, Enum):
    INBOX = "inbox"
    VALIDATED = "validated"
    MODEL = "model"
    DELETED = "deleted"


class Classification(BaseModel):
    intent_id: str
    entities: list[dict] = Field(default_factory=list)


class ClassifiedSentence(BaseModel):
    """A sentence with its (validated or predicted) classification."""

    text: str
    language: str
    application_id: str
    creation_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    update_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    status: ClassifiedSentenceStatus = ClassifiedSentenceStatus.INBOX
    classification: Classification
    last_intent_probability: float | None = None
    last_entity_probability: float | None = None


class SentencesQuery(BaseModel):
    application_id: str
    language: str | None = None
    start: int = 0
    size: int = 20
    search: str | None = None
    intent_id: str | None = None
    status: list[ClassifiedSentenceStatus] = Field(default_factory=list)


class SentencesResult(BaseModel):
    sentences: list[ClassifiedSentence] = Field(default_factory=list)
    total: int = 0


# =============================================================================
# Parsing
# =============================================================================


class QueryContext(BaseModel):
    language: str
    client_id: str | None = None
    client_device: str | None = None
    dialog_id: str | None = None
    test: bool = False


class ParseQuery(BaseModel):
    namespace: str
    application_name: str
    queries: list[str]
    context: QueryContext


class ParsedEntityValue(BaseModel):
    start: int
    end: int
    entity: str
    role: str
    value: dict | None = None
    probability: float = 1.0


class ParseResult(BaseModel):
    """Classification of one query."""

    intent: str
    intent_namespace: str
    language: str
    entities: list[ParsedEntityValue] = Field(default_factory=list)
    intent_probability: float = 0.0
    entities_probability: float = 0.0
    retained_query: str = ""
    other_intents_probabilities: dict[str, float] = Field(default_factory=dict)

    def first_value(self, role: str) -> ParsedEntityValue | None:
        return next((e for e in self.entities if e.role == role), None)
