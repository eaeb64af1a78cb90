"""
Request and response models of the admin API.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from palaver.config.schemas import (
    AnswerConfiguration,
    AnswerConfigurationType,
    StoryDefinitionConfiguration,
)
from palaver.integrations.nlp.schemas import ClassifiedSentence, ClassifiedSentenceStatus
from palaver.integrations.rest.schemas import ClientSentence

# =============================================================================
# Intents & stories
# =============================================================================


class BotIntentSearchRequest(BaseModel):
    namespace: str
    application_name: str
    language: str


class SentenceReport(BaseModel):
    text: str
    language: str
    status: ClassifiedSentenceStatus
    update_date: datetime

    @classmethod
    def from_sentence(cls, sentence: ClassifiedSentence) -> SentenceReport:
        return cls(
            text=sentence.text,
            language=sentence.language,
            status=sentence.status,
            update_date=sentence.update_date,
        )


class BotStoryDefinition(BaseModel):
    """Admin view of a stored story."""

    id: str
    story_id: str
    bot_id: str
    intent: str
    current_type: AnswerConfigurationType
    answers: list[AnswerConfiguration] = Field(default_factory=list)

    @classmethod
    def from_configuration(cls, story: StoryDefinitionConfiguration) -> BotStoryDefinition:
        return cls(
            id=story.id,
            story_id=story.story_id,
            bot_id=story.bot_id,
            intent=story.intent,
            current_type=story.current_type,
            answers=story.answers,
        )


class BotIntent(BaseModel):
    story: BotStoryDefinition
    sentences: list[SentenceReport] = Field(default_factory=list)


class CreateBotIntentRequest(BaseModel):
    bot_configuration_id: str
    intent: str
    language: str
    first_sentences: list[str] = Field(default_factory=list)
    type: AnswerConfigurationType = AnswerConfigurationType.SIMPLE
    reply: str


class UpdateBotIntentRequest(BaseModel):
    story_definition_id: str
    reply: str


# =============================================================================
# Talk
# =============================================================================


class BotDialogRequest(BaseModel):
    bot_application_configuration_id: str
    namespace: str = ""
    language: str
    message: ClientSentence


class BotDialogResponse(BaseModel):
    messages: list[ClientSentence] = Field(default_factory=list)
