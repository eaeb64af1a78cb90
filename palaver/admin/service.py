"""
Bot Admin Service for Palaver.

Backs the admin API: bot application configurations, admin-created
intents and their stories, conversation reports, parse logs and the
"talk" test feature (a message sent to a bot through its REST
connector).
"""

from __future__ import annotations

import logging
import threading
from uuid import uuid4

from palaver.config.schemas import (
    AnswerConfigurationType,
    BotApplicationConfiguration,
    ScriptAnswerConfiguration,
    ScriptAnswerVersionedConfiguration,
    SimpleAnswer,
    SimpleAnswerConfiguration,
    StoryDefinitionConfiguration,
)
from palaver.config.service import ConfigurationService
from palaver.i18n import I18nLabelKey, LabelStore, key_from_default_label
from palaver.integrations.compiler import ScriptCompilerClient, ScriptFile
from palaver.integrations.nlp import (
    Classification,
    ClassifiedSentence,
    ClassifiedSentenceStatus,
    IntentDefinition,
    NlpClient,
    SentencesQuery,
)
from palaver.integrations.rest import (
    ClientMessageRequest,
    ClientSentence,
    ConnectorRestClient,
)
from palaver.reports import (
    DialogReportQueryResult,
    DialogsSearchQuery,
    ParseLogService,
    ParseRequestLogQuery,
    ParseRequestLogQueryResult,
    ParseRequestLogStat,
    ParseRequestLogStatQuery,
    ReportService,
    UserSearchQuery,
    UserSearchQueryResult,
)

from .models import (
    BotDialogRequest,
    BotDialogResponse,
    BotIntent,
    BotIntentSearchRequest,
    BotStoryDefinition,
    CreateBotIntentRequest,
    SentenceReport,
    UpdateBotIntentRequest,
)

logger = logging.getLogger(__name__)

TECHNICAL_ERROR_TEXT = "technical error :("


class UnauthorizedError(Exception):
    """Raised when a configuration is requested from another namespace."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ScriptCompilationError(Exception):
    """Raised when a script answer could not be compiled."""

    def __init__(self, message: str = "compilation failed", errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class BotAdminService:
    """
    Admin operations.

    Args:
        config_service: Application configurations and story definitions
        nlp_client: NLP service
        compiler: Compiler of script answers
        label_store: Storage of simple answer labels
        reports: User and dialog reports
        parse_logs: NLP parse logs
        default_rest_base_url: Base url of bots whose configuration has none
        bot_version: Version recorded on compiled script answers
    """

    def __init__(
        self,
        config_service: ConfigurationService,
        nlp_client: NlpClient,
        compiler: ScriptCompilerClient,
        label_store: LabelStore,
        reports: ReportService,
        parse_logs: ParseLogService,
        *,
        default_rest_base_url: str = "please set base url of the bot",
        bot_version: str = "",
    ):
        self.config_service = config_service
        self.nlp = nlp_client
        self.compiler = compiler
        self.label_store = label_store
        self.reports = reports
        self.parse_logs = parse_logs
        self.default_rest_base_url = default_rest_base_url
        self.bot_version = bot_version
        self._rest_clients: dict[str, ConnectorRestClient] = {}
        self._rest_clients_lock = threading.Lock()

    # =========================================================================
    # REST clients
    # =========================================================================

    def get_rest_client(self, conf: BotApplicationConfiguration) -> ConnectorRestClient:
        """REST connector client of a bot, one per base url."""
        base_url = conf.base_url if conf.base_url and conf.base_url.strip() else self.default_rest_base_url
        with self._rest_clients_lock:
            client = self._rest_clients.get(base_url)
            if client is None:
                client = ConnectorRestClient(base_url)
                self._rest_clients[base_url] = client
            return client

    async def close(self) -> None:
        with self._rest_clients_lock:
            clients = list(self._rest_clients.values())
            self._rest_clients.clear()
        for client in clients:
            await client.close()

    # =========================================================================
    # Configurations
    # =========================================================================

    async def get_bot_configuration(self, configuration_id: str, namespace: str) -> BotApplicationConfiguration:
        """
        Raises:
            UnauthorizedError: If the configuration is unknown or belongs to another namespace
        """
        conf = await self.config_service.get_configuration_by_id(configuration_id)
        if conf is None or conf.namespace != namespace:
            raise UnauthorizedError()
        return conf

    async def get_bot_configuration_by_id(self, configuration_id: str) -> BotApplicationConfiguration | None:
        return await self.config_service.get_configuration_by_id(configuration_id)

    async def get_bot_configurations_by_namespace_and_bot_id(
        self,
        namespace: str,
        bot_id: str,
    ) -> list[BotApplicationConfiguration]:
        return [
            conf
            for conf in await self.config_service.get_configurations()
            if conf.namespace == namespace and conf.bot_id == bot_id
        ]

    async def get_bot_configurations_by_namespace_and_configuration_id(
        self,
        namespace: str,
        configuration_id: str,
    ) -> list[BotApplicationConfiguration]:
        return [
            conf
            for conf in await self.config_service.get_configurations()
            if conf.namespace == namespace and conf.id == configuration_id
        ]

    async def get_bot_configurations_by_namespace_and_nlp_model(
        self,
        namespace: str,
        application_name: str,
    ) -> list[BotApplicationConfiguration]:
        application = await self.nlp.get_application_by_namespace_and_name(namespace, application_name)
        if application is None:
            return []
        return [
            conf
            for conf in await self.config_service.get_configurations()
            if conf.namespace == application.namespace and conf.nlp_model == application.name
        ]

    async def save_application_configuration(self, conf: BotApplicationConfiguration) -> BotApplicationConfiguration:
        """Save an operator edit; installation will not overwrite it."""
        return await self.config_service.save(conf.model_copy(update={"manually_modified": True}))

    async def delete_application_configuration(self, conf: BotApplicationConfiguration) -> None:
        await self.config_service.delete(conf)

    # =========================================================================
    # Reports
    # =========================================================================

    async def search_users(self, query: UserSearchQuery) -> UserSearchQueryResult:
        return await self.reports.search_users(query)

    async def search_dialogs(self, query: DialogsSearchQuery) -> DialogReportQueryResult:
        return await self.reports.search_dialogs(query)

    async def search_logs(self, query: ParseRequestLogQuery) -> ParseRequestLogQueryResult:
        return await self.parse_logs.search(query)

    async def log_stats(self, query: ParseRequestLogStatQuery) -> list[ParseRequestLogStat]:
        return await self.parse_logs.stats(query)

    # =========================================================================
    # Intents
    # =========================================================================

    async def load_bot_intents(self, request: BotIntentSearchRequest) -> list[BotIntent]:
        """Admin-created stories of a bot, each with a few sample sentences."""
        confs = await self.get_bot_configurations_by_namespace_and_nlp_model(
            request.namespace, request.application_name
        )
        if not confs:
            return []
        bot_conf = confs[0]

        application = await self.nlp.get_application_by_namespace_and_name(request.namespace, bot_conf.nlp_model)
        intents = []
        for story in await self.config_service.get_story_definitions(bot_conf.bot_id):
            intent = await self.nlp.get_intent_by_namespace_and_name(request.namespace, story.intent)
            if intent is None or application is None:
                logger.warning(f"unknown intent: {request.namespace} {story.intent} - skipped")
                continue
            result = await self.nlp.search_sentences(
                SentencesQuery(
                    application_id=application.id,
                    language=request.language,
                    size=3,
                    intent_id=intent.id,
                )
            )
            intents.append(
                BotIntent(
                    story=BotStoryDefinition.from_configuration(story),
                    sentences=[SentenceReport.from_sentence(s) for s in result.sentences],
                )
            )
        return intents

    async def delete_bot_intent(self, namespace: str, story_definition_id: str) -> bool:
        """
        Delete an admin-created story and detach its intent from the NLP application.

        Returns:
            True if the story was deleted
        """
        story = await self.config_service.get_story_definition_by_id(story_definition_id)
        if story is None:
            return False

        confs = await self.get_bot_configurations_by_namespace_and_bot_id(namespace, story.bot_id)
        if not confs:
            return False

        application = await self.nlp.get_application_by_namespace_and_name(namespace, confs[0].nlp_model)
        intent = await self.nlp.get_intent_by_namespace_and_name(namespace, story.intent)
        if application is not None and intent is not None:
            await self.nlp.remove_intent_from_application(application, intent.id)
        await self.config_service.delete_story_definition(story)
        return True

    async def create_bot_intent(
        self,
        namespace: str,
        request: CreateBotIntentRequest,
    ) -> IntentDefinition | None:
        """
        Create an intent, its story and its first training sentences.

        Returns:
            The intent, or None if the bot configuration or NLP application is unknown

        Raises:
            ScriptCompilationError: If a script reply does not compile
        """
        confs = await self.get_bot_configurations_by_namespace_and_configuration_id(
            namespace, request.bot_configuration_id
        )
        if not confs:
            return None
        bot_conf = confs[0]

        application = await self.nlp.get_application_by_namespace_and_name(namespace, bot_conf.nlp_model)
        if application is None:
            logger.warning(f"unknown nlp application: {namespace} {bot_conf.nlp_model}")
            return None

        intent = await self.nlp.create_or_update_intent(
            namespace,
            IntentDefinition(name=request.intent, namespace=namespace, applications=[application.id]),
        )
        if intent is None:
            return None

        if request.type == AnswerConfigurationType.SIMPLE:
            answer = await self._create_simple_answer(namespace, request.language, request.reply)
        else:
            answer = await self._create_script_answer(bot_conf.bot_id, request.reply)

        await self.config_service.save_story_definition(
            StoryDefinitionConfiguration(
                story_id=request.intent,
                bot_id=bot_conf.bot_id,
                intent=request.intent,
                current_type=request.type,
                answers=[answer],
            )
        )

        for text in request.first_sentences:
            await self.nlp.save_sentence(
                ClassifiedSentence(
                    text=text,
                    language=request.language,
                    application_id=application.id,
                    status=ClassifiedSentenceStatus.VALIDATED,
                    classification=Classification(intent_id=intent.id),
                    last_intent_probability=1.0,
                    last_entity_probability=1.0,
                )
            )
        logger.info(f"Created intent {namespace}:{request.intent} for bot {bot_conf.bot_id}")
        return intent

    async def update_bot_intent(
        self,
        namespace: str,
        request: UpdateBotIntentRequest,
    ) -> IntentDefinition | None:
        """Replace the answer of an admin-created story."""
        story = await self.config_service.get_story_definition_by_id(request.story_definition_id)
        if story is None:
            return None

        confs = await self.get_bot_configurations_by_namespace_and_bot_id(namespace, story.bot_id)
        if not confs:
            return None

        if story.current_type == AnswerConfigurationType.SIMPLE:
            answer = await self._create_simple_answer(namespace, None, request.reply)
        else:
            answer = await self._create_script_answer(confs[0].bot_id, request.reply)

        await self.config_service.save_story_definition(story.model_copy(update={"answers": [answer]}))
        return await self.nlp.get_intent_by_namespace_and_name(namespace, story.intent)

    async def _create_simple_answer(
        self,
        namespace: str,
        language: str | None,
        reply: str,
    ) -> SimpleAnswerConfiguration:
        label = I18nLabelKey(
            key=key_from_default_label(reply),
            namespace=namespace,
            category="simple",
            default_label=reply,
        )
        if language is not None:
            await self.label_store.save_if_not_exists(label, language)

        return SimpleAnswerConfiguration(
            answers=[
                SimpleAnswer(
                    key=label.key,
                    namespace=label.namespace,
                    category=label.category,
                    default_label=label.default_label,
                )
            ]
        )

    async def _create_script_answer(self, bot_id: str, script: str) -> ScriptAnswerConfiguration:
        result = await self.compiler.compile(ScriptFile(script=script, file_name=f"T{uuid4().hex}"))
        if result is None or result.compilation_result is None:
            raise ScriptCompilationError(errors=result.errors if result else None)

        compiled = result.compilation_result
        return ScriptAnswerConfiguration(
            script_versions=[
                ScriptAnswerVersionedConfiguration(
                    script=script,
                    compiled_classes=compiled.class_names(),
                    main_class_name=compiled.main_class,
                    version=self.bot_version,
                )
            ]
        )

    # =========================================================================
    # Talk
    # =========================================================================

    async def talk(self, request: BotDialogRequest) -> BotDialogResponse:
        """
        Send a test message to a bot through its REST connector.

        Any transport failure or error response is answered with a
        single technical error sentence.

        Raises:
            UnauthorizedError: If the configuration belongs to another namespace
        """
        conf = await self.get_bot_configuration(request.bot_application_configuration_id, request.namespace)
        try:
            client = self.get_rest_client(conf)
            response = await client.talk(
                conf.application_id,
                request.language,
                ClientMessageRequest(
                    user_id=f"test_{conf.id}_{request.language}",
                    recipient_id=f"test_bot_{conf.id}_{request.language}",
                    message=request.message,
                    target_connector_type=conf.target_connector_type,
                ),
            )
            return BotDialogResponse(messages=response.messages)
        except Exception as e:
            logger.error(f"talk to {conf.application_id} failed: {e}", exc_info=True)
            return BotDialogResponse(messages=[ClientSentence(text=TECHNICAL_ERROR_TEXT)])
