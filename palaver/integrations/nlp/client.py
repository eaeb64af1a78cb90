"""
NLP service client for Palaver.

Usage:
    async with NlpClient(NlpConfig(base_url="http://nlp:8888")) as nlp:
        await nlp.create_application("app", "travel", "en")
        result = await nlp.parse("app", "travel", "book a train", "en")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from palaver.integrations.base import NotFoundError, ServiceClient, ServiceConfig, ServiceError

from .schemas import (
    ApplicationDefinition,
    ClassifiedSentence,
    CreateApplicationRequest,
    IntentDefinition,
    ParseQuery,
    ParseResult,
    QueryContext,
    SentencesQuery,
    SentencesResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NlpConfig(ServiceConfig):
    """Configuration for the NLP client."""

    base_url: str = "http://localhost:8888"
    api_prefix: str = "/rest/nlp"


class NlpClient(ServiceClient):
    """
    Async client of the NLP service.

    Lookups return None when the resource does not exist; every other
    failure raises a ServiceError subtype.
    """

    def __init__(self, config: NlpConfig | None = None):
        config = config or NlpConfig()
        super().__init__(config)
        self._config: NlpConfig = config

    @property
    def name(self) -> str:
        return "nlp"

    def _path(self, path: str) -> str:
        return f"{self._config.api_prefix}{path}"

    # =========================================================================
    # Applications
    # =========================================================================

    async def create_application(
        self,
        namespace: str,
        name: str,
        locale: str,
    ) -> ApplicationDefinition:
        """Create the application if it does not exist yet."""
        request = CreateApplicationRequest(namespace=namespace, name=name, locale=locale)
        response = await self._request(
            "POST",
            self._path("/applications"),
            json=request.model_dump(),
        )
        application = ApplicationDefinition.model_validate(response.json())
        logger.info(f"[nlp] Application {namespace}:{name} available")
        return application

    async def get_application_by_namespace_and_name(
        self,
        namespace: str,
        name: str,
    ) -> ApplicationDefinition | None:
        try:
            response = await self._request("GET", self._path(f"/applications/{namespace}/{name}"))
        except NotFoundError:
            return None
        return ApplicationDefinition.model_validate(response.json())

    async def healthcheck(self) -> bool:
        """True when the NLP service answers its health check."""
        try:
            await self._request("GET", self._path("/healthcheck"))
        except ServiceError as e:
            logger.warning(f"[nlp] Health check failed: {e}")
            return False
        return True

    # =========================================================================
    # Intents
    # =========================================================================

    async def get_intent_by_namespace_and_name(
        self,
        namespace: str,
        name: str,
    ) -> IntentDefinition | None:
        try:
            response = await self._request("GET", self._path(f"/intents/{namespace}/{name}"))
        except NotFoundError:
            return None
        return IntentDefinition.model_validate(response.json())

    async def create_or_update_intent(
        self,
        namespace: str,
        intent: IntentDefinition,
    ) -> IntentDefinition | None:
        """
        Create the intent, or attach it to new applications.

        Returns:
            The stored intent, or None if the service refused it
        """
        try:
            response = await self._request(
                "POST",
                self._path(f"/intents/{namespace}"),
                json=intent.model_dump(by_alias=True, exclude_none=True),
            )
        except NotFoundError:
            return None
        return IntentDefinition.model_validate(response.json())

    async def remove_intent_from_application(
        self,
        application: ApplicationDefinition,
        intent_id: str,
    ) -> bool:
        try:
            await self._request(
                "DELETE",
                self._path(f"/applications/{application.id}/intents/{intent_id}"),
            )
        except NotFoundError:
            return False
        logger.info(f"[nlp] Removed intent {intent_id} from {application.namespace}:{application.name}")
        return True

    # =========================================================================
    # Sentences
    # =========================================================================

    async def search_sentences(self, query: SentencesQuery) -> SentencesResult:
        response = await self._request(
            "POST",
            self._path("/sentences/search"),
            json=query.model_dump(mode="json", exclude_none=True),
        )
        return SentencesResult.model_validate(response.json())

    async def save_sentence(self, sentence: ClassifiedSentence) -> None:
        await self._request(
            "POST",
            self._path("/sentences"),
            json=sentence.model_dump(mode="json"),
        )

    # =========================================================================
    # Parsing
    # =========================================================================

    async def parse(
        self,
        namespace: str,
        application_name: str,
        text: str,
        language: str,
        *,
        client_id: str | None = None,
    ) -> ParseResult | None:
        """Classify a sentence. None when the application is unknown."""
        query = ParseQuery(
            namespace=namespace,
            application_name=application_name,
            queries=[text],
            context=QueryContext(language=language, client_id=client_id),
        )
        try:
            response = await self._request(
                "POST",
                self._path("/parse"),
                json=query.model_dump(exclude_none=True),
            )
        except NotFoundError:
            logger.warning(f"[nlp] Unknown application {namespace}:{application_name}")
            return None
        return ParseResult.model_validate(response.json())
