"""
Tests for the service clients.

Tests cover:
- ServiceClient error mapping and retries
- NlpClient API calls
- ScriptCompilerClient
- ConnectorRestClient
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from palaver.integrations.base import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RetryPolicy,
    ServiceClient,
    ServiceConfig,
    ServiceError,
    TransientServiceError,
    ValidationError,
    error_messages,
)
from palaver.integrations.compiler import CompilerConfig, ScriptCompilerClient, ScriptFile
from palaver.integrations.nlp import (
    IntentDefinition,
    NlpClient,
    NlpConfig,
)
from palaver.integrations.rest import ClientMessageRequest, ClientSentence, ConnectorRestClient


class EchoClient(ServiceClient):
    @property
    def name(self) -> str:
        return "echo"


def with_transport(client, handler):
    """Route the client requests to an in-process handler."""
    client._client = httpx.AsyncClient(
        base_url=client.config.base_url,
        transport=httpx.MockTransport(handler),
    )
    return client


def json_response(data, status_code=200):
    return MagicMock(status_code=status_code, json=MagicMock(return_value=data))


# =============================================================================
# ServiceClient Tests
# =============================================================================


class TestServiceClient:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (404, NotFoundError),
            (400, ValidationError),
            (422, ValidationError),
            (429, RateLimitError),
            (503, TransientServiceError),
            (409, ServiceError),
        ],
    )
    async def test_error_mapping(self, status, error_type):
        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=None)),
            lambda request: httpx.Response(status, text="nope"),
        )

        with pytest.raises(error_type) as exc_info:
            await client._request("GET", "/thing")

        assert type(exc_info.value) is error_type
        assert exc_info.value.status_code == status
        assert exc_info.value.service == "echo"
        assert exc_info.value.messages == ["nope"]

    @pytest.mark.parametrize(
        "body,messages",
        [
            ({"errors": [{"message": "unknown locale"}]}, ["unknown locale"]),
            ({"errors": ["line 3: unexpected token", "line 4: missing }"]}, ["line 3: unexpected token", "line 4: missing }"]),
            ({"detail": "Unauthorized"}, ["Unauthorized"]),
            ({"detail": [{"msg": "field required", "loc": ["body", "user_id"]}]}, ["field required"]),
            ({"message": "application exists"}, ["application exists"]),
        ],
    )
    def test_error_body_messages(self, body, messages):
        assert error_messages(httpx.Response(400, json=body)) == messages

    def test_empty_error_body(self):
        assert error_messages(httpx.Response(500)) == []

    @pytest.mark.asyncio
    async def test_error_message_includes_body_messages(self):
        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=None)),
            lambda request: httpx.Response(400, json={"errors": [{"message": "unknown locale"}]}),
        )

        with pytest.raises(ValidationError) as exc_info:
            await client._request("POST", "/applications", json={})

        assert str(exc_info.value) == "[echo] POST /applications returned 400: unknown locale"

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"ok": True})

        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=RetryPolicy(retries=3, delay=0.001))),
            handler,
        )

        response = await client._request("GET", "/thing")

        assert response.json() == {"ok": True}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=RetryPolicy(retries=1, delay=0.001))),
            handler,
        )

        await client._request("GET", "/thing")

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="boom")

        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=RetryPolicy(retries=1, delay=0.001))),
            handler,
        )

        with pytest.raises(TransientServiceError) as exc_info:
            await client._request("GET", "/thing")

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 500
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        client = with_transport(
            EchoClient(ServiceConfig(base_url="http://svc", retry=RetryPolicy(retries=3, delay=0.001))),
            handler,
        )

        with pytest.raises(NotFoundError):
            await client._request("GET", "/thing")

        assert len(calls) == 1

    def test_backoff_is_capped(self):
        policy = RetryPolicy(delay=1.0, max_delay=5.0)

        assert 0.75 <= policy.backoff(0) <= 1.25
        assert 3.0 <= policy.backoff(2) <= 5.0
        assert policy.backoff(10) <= 6.25

    def test_auth_header(self):
        client = EchoClient(ServiceConfig(api_key="secret"))

        assert client._get_auth_headers() == {"Authorization": "Bearer secret"}
        assert EchoClient(ServiceConfig())._get_auth_headers() == {}

    def test_client_retry_policies(self):
        assert NlpClient().config.retry == RetryPolicy()
        assert ScriptCompilerClient().config.retry == RetryPolicy(retries=1)
        assert ConnectorRestClient("http://bot").config.retry is None


# =============================================================================
# NlpClient Tests
# =============================================================================


@pytest.fixture
def nlp_client():
    return NlpClient(NlpConfig(base_url="http://nlp"))


class TestNlpClient:
    def test_client_name(self, nlp_client):
        assert nlp_client.name == "nlp"

    @pytest.mark.asyncio
    async def test_create_application(self, nlp_client):
        with patch.object(nlp_client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = json_response(
                {"_id": "a1", "name": "travel", "namespace": "acme", "supported_locales": ["en"]}
            )

            application = await nlp_client.create_application("acme", "travel", "en")

        assert application.id == "a1"
        assert application.supported_locales == ["en"]
        mock_request.assert_awaited_once_with(
            "POST",
            "/rest/nlp/applications",
            json={"namespace": "acme", "name": "travel", "locale": "en"},
        )

    @pytest.mark.asyncio
    async def test_unknown_application_is_none(self, nlp_client):
        with patch.object(nlp_client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = NotFoundError("missing", "nlp", status_code=404)

            assert await nlp_client.get_application_by_namespace_and_name("acme", "travel") is None

    @pytest.mark.asyncio
    async def test_parse(self, nlp_client):
        with patch.object(nlp_client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = json_response(
                {"intent": "greetings", "intent_namespace": "acme", "language": "en", "intent_probability": 0.9}
            )

            result = await nlp_client.parse("acme", "travel", "hello", "en", client_id="u1")

        assert result.intent == "greetings"
        assert result.intent_probability == 0.9
        body = mock_request.await_args.kwargs["json"]
        assert body["queries"] == ["hello"]
        assert body["context"]["client_id"] == "u1"

    @pytest.mark.asyncio
    async def test_parse_unknown_application(self, nlp_client):
        with_transport(nlp_client, lambda request: httpx.Response(404, text="unknown application"))

        assert await nlp_client.parse("acme", "travel", "hello", "en") is None

    @pytest.mark.asyncio
    async def test_healthcheck(self, nlp_client):
        with_transport(nlp_client, lambda request: httpx.Response(200))

        assert await nlp_client.healthcheck() is True

    @pytest.mark.asyncio
    async def test_healthcheck_failure(self, nlp_client):
        with_transport(nlp_client, lambda request: httpx.Response(403, text="forbidden"))

        assert await nlp_client.healthcheck() is False

    @pytest.mark.asyncio
    async def test_create_or_update_intent(self, nlp_client):
        intent = IntentDefinition(name="booking", namespace="acme", applications=["a1"])

        with patch.object(nlp_client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = json_response(
                {"_id": "i1", "name": "booking", "namespace": "acme", "applications": ["a1"]}
            )

            saved = await nlp_client.create_or_update_intent("acme", intent)

        assert saved.id == "i1"
        assert saved.qualified_name == "acme:booking"
        args = mock_request.await_args
        assert args.args == ("POST", "/rest/nlp/intents/acme")
        assert "_id" not in args.kwargs["json"]


# =============================================================================
# ScriptCompilerClient Tests
# =============================================================================


class TestScriptCompilerClient:
    @pytest.mark.asyncio
    async def test_compile(self):
        compiler = ScriptCompilerClient(CompilerConfig(base_url="http://compiler"))

        with patch.object(compiler, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = json_response(
                {
                    "compilation_result": {
                        "files": {"TBooking.class": "Y2FmZWJhYmU="},
                        "main_class": "TBooking",
                    },
                    "errors": [],
                }
            )

            result = await compiler.compile(ScriptFile(script="story {}", file_name="TBooking"))

        assert result.compilation_result.main_class == "TBooking"
        assert result.compilation_result.class_names() == {"TBooking": "Y2FmZWJhYmU="}

    @pytest.mark.asyncio
    async def test_compile_failure_is_none(self):
        compiler = ScriptCompilerClient(CompilerConfig(base_url="http://compiler"))

        with patch.object(compiler, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = ServiceError("boom", "script_compiler", status_code=500)

            assert await compiler.compile(ScriptFile(script="story {}", file_name="TBooking")) is None

    @pytest.mark.asyncio
    async def test_refused_script_returns_errors(self):
        compiler = with_transport(
            ScriptCompilerClient(CompilerConfig(base_url="http://compiler")),
            lambda request: httpx.Response(400, json={"errors": ["line 1: unexpected end of script"]}),
        )

        result = await compiler.compile(ScriptFile(script="story {", file_name="TBooking"))

        assert result.compilation_result is None
        assert result.errors == ["line 1: unexpected end of script"]


# =============================================================================
# ConnectorRestClient Tests
# =============================================================================


class TestConnectorRestClient:
    @pytest.mark.asyncio
    async def test_talk(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"messages": [{"text": "Hello!"}]})

        client = with_transport(ConnectorRestClient("http://bot"), handler)
        request = ClientMessageRequest(
            user_id="u1", recipient_id="b1", message=ClientSentence(text="hi")
        )

        response = await client.talk("web_rest", "en", request)

        assert response.messages[0].text == "Hello!"
        assert seen[0].url.path == "/rest/web_rest/en"

    @pytest.mark.asyncio
    async def test_talk_server_error_raises(self):
        client = with_transport(ConnectorRestClient("http://bot"), lambda request: httpx.Response(500))
        request = ClientMessageRequest(user_id="u1", recipient_id="b1", message=ClientSentence(text="hi"))

        with pytest.raises(ServiceError):
            await client.talk("web_rest", "en", request)

    @pytest.mark.asyncio
    async def test_talk_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = with_transport(ConnectorRestClient("http://bot"), handler)
        request = ClientMessageRequest(user_id="u1", recipient_id="b1", message=ClientSentence(text="hi"))

        with pytest.raises(TransientServiceError):
            await client.talk("web_rest", "en", request)

        assert len(calls) == 1
