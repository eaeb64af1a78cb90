"""
Configuration Schemas for Palaver.

Pydantic models for configuration data stored in MongoDB, plus the
application settings model.

Security:
    Sensitive fields use SecretStr to prevent accidental logging
    of credentials. Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, ClassVar, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, SecretStr

NONE_CONNECTOR_TYPE = "none"
REST_CONNECTOR_TYPE = "rest"


def _utc_now() -> datetime:
    """Get current UTC time with timezone awareness."""
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex


class ConnectorConfiguration(BaseModel):
    """
    Declared configuration of one connector.

    A blank connector_id means "derive from the bot id" at install time.
    """

    model_config = ConfigDict(frozen=True)

    connector_id: str = ""
    type: str = NONE_CONNECTOR_TYPE
    owner_connector_type: str | None = None
    name: str = ""
    base_url: str | None = None
    path: str = ""
    parameters: dict[str, str] = Field(default_factory=dict)
    manually_modified: bool = False

    @classmethod
    def placeholder(cls) -> "ConnectorConfiguration":
        """Configuration installed when nothing is declared."""
        return cls(
            connector_id="",
            type=NONE_CONNECTOR_TYPE,
            owner_connector_type=NONE_CONNECTOR_TYPE,
        )

    @property
    def is_placeholder(self) -> bool:
        return not self.connector_id and self.type == NONE_CONNECTOR_TYPE

    def application_id_for(self, bot_id: str) -> str:
        return self.connector_id if self.connector_id.strip() else bot_id

    def name_for(self, bot_id: str) -> str:
        return self.name if self.name.strip() else bot_id


class BotApplicationConfiguration(BaseModel):
    """
    Persisted pairing of one bot with one connector.

    Stored in MongoDB 'bot_configurations' collection.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id, alias="_id")
    application_id: str
    bot_id: str
    namespace: str
    nlp_model: str
    connector_type: str = NONE_CONNECTOR_TYPE
    owner_connector_type: str | None = None
    name: str = ""
    base_url: str | None = None
    parameters: dict[str, str] = Field(default_factory=dict)
    path: str | None = None
    manually_modified: bool = False
    updated_at: datetime = Field(default_factory=_utc_now)

    STRUCTURAL_FIELDS: ClassVar[tuple[str, ...]] = (
        "namespace",
        "nlp_model",
        "connector_type",
        "owner_connector_type",
    )

    @property
    def target_connector_type(self) -> str:
        return self.owner_connector_type or self.connector_type

    def structural_key(self) -> tuple:
        return tuple(getattr(self, f) for f in self.STRUCTURAL_FIELDS)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class AnswerConfigurationType(str, Enum):
    """Kind of answer attached to a story."""

    SIMPLE = "simple"
    SCRIPT = "script"


class SimpleAnswer(BaseModel):
    """One label of a simple answer, optionally delayed."""

    key: str
    namespace: str
    category: str = "simple"
    default_label: str
    delay_ms: int = 0


class SimpleAnswerConfiguration(BaseModel):
    answer_type: Literal[AnswerConfigurationType.SIMPLE] = AnswerConfigurationType.SIMPLE
    answers: list[SimpleAnswer] = Field(default_factory=list)


class ScriptAnswerVersionedConfiguration(BaseModel):
    """A compiled revision of a script answer."""

    script: str
    compiled_classes: dict[str, str] = Field(default_factory=dict)
    main_class_name: str
    version: str = ""
    created_at: datetime = Field(default_factory=_utc_now)


class ScriptAnswerConfiguration(BaseModel):
    answer_type: Literal[AnswerConfigurationType.SCRIPT] = AnswerConfigurationType.SCRIPT
    script_versions: list[ScriptAnswerVersionedConfiguration] = Field(default_factory=list)


AnswerConfiguration = Annotated[
    SimpleAnswerConfiguration | ScriptAnswerConfiguration,
    Field(discriminator="answer_type"),
]


class StoryDefinitionConfiguration(BaseModel):
    """
    A story created from the admin.

    Stored in MongoDB 'story_definitions' collection.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id, alias="_id")
    story_id: str
    bot_id: str
    intent: str
    current_type: AnswerConfigurationType
    answers: list[AnswerConfiguration] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utc_now)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class AppSettings(BaseModel):
    """
    Application settings model.

    Security:
        API keys use SecretStr to prevent accidental logging.
    """

    service_name: str = "palaver"
    environment: str = "development"
    debug: bool = False

    # MongoDB
    mongodb_url: SecretStr = Field(..., description="MongoDB connection URL")
    mongodb_database: str = "palaver"

    # External services
    nlp_base_url: str = Field(default="http://localhost:8888", description="NLP service URL")
    nlp_api_key: SecretStr | None = None
    compiler_base_url: str = Field(default="http://localhost:8889", description="Script compiler URL")

    # Bots
    default_namespace: str = "app"
    default_locale: str = "en"
    connectors_file: str | None = Field(None, description="JSON file of declared connectors")
    admin_rest_default_base_url: str = "please set base url of the bot"
    install_admin_rest_connector: bool = True
    parse_log_ttl_days: int = 7
    max_dialogs: int = 10_000
    dialog_idle_seconds: float = 3600.0

    class Config:
        env_prefix = "PALAVER_"
        case_sensitive = False
