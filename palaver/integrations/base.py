"""
HTTP plumbing shared by the Palaver service clients.

The NLP service, the script compiler and the bot REST connectors all
speak JSON. A failed call becomes a ServiceError carrying the messages
found in the error body, whatever shape the service gives them:

    NLP service:     {"errors": [{"message": "unknown locale"}]}
    Script compiler: {"errors": ["line 3: unexpected token"]}
    Bot connectors:  {"detail": "..."}

Retries are chosen per client with a RetryPolicy. NLP calls are retried
on transient failures, the compiler once, and the admin "talk" never
(an operator is waiting for the answer).
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    A call to an external service failed.

    Attributes:
        service: Name of the client that made the call
        status_code: HTTP status, None when no response was received
        messages: Error messages read from the response body
    """

    retryable = False

    def __init__(
        self,
        message: str,
        service: str,
        *,
        status_code: int | None = None,
        messages: list[str] | None = None,
    ):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.messages = messages or []

    def __str__(self) -> str:
        text = f"[{self.service}] {self.args[0]}"
        if self.messages:
            text += f": {'; '.join(self.messages)}"
        return text


class TransientServiceError(ServiceError):
    """Timeout, network failure or 5xx: the same call may succeed later."""

    retryable = True


class AuthenticationError(ServiceError):
    """401/403"""


class RateLimitError(TransientServiceError):
    """429"""


class NotFoundError(ServiceError):
    """404. Lookups turn it into None."""


class ValidationError(ServiceError):
    """400/422: the service refused the request, see `messages`."""


_ERRORS_BY_STATUS: dict[int, type[ServiceError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    422: ValidationError,
    429: RateLimitError,
}


def error_messages(response: httpx.Response) -> list[str]:
    """Messages of an error body, from any of the known JSON shapes."""
    try:
        body = response.json()
    except ValueError:
        return [response.text] if response.text else []

    if isinstance(body, dict):
        if "errors" in body:
            body = body["errors"]
        elif "detail" in body:
            body = body["detail"]
        elif "message" in body:
            body = body["message"]

    if isinstance(body, list):
        return [
            str(item.get("message") or item.get("msg") or item) if isinstance(item, dict) else str(item)
            for item in body
        ]
    return [str(body)] if body else []


def error_for_response(service: str, method: str, path: str, response: httpx.Response) -> ServiceError:
    status = response.status_code
    error_type = _ERRORS_BY_STATUS.get(status)
    if error_type is None:
        error_type = TransientServiceError if status >= 500 else ServiceError
    return error_type(
        f"{method} {path} returned {status}",
        service,
        status_code=status,
        messages=error_messages(response),
    )


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    How often a transient failure is retried.

    The n-th retry waits `delay * 2**n` seconds (capped at `max_delay`),
    spread by up to 25% either way.
    """

    retries: int = 3
    delay: float = 1.0
    max_delay: float = 30.0

    def backoff(self, retry: int) -> float:
        return min(self.delay * 2**retry, self.max_delay) * random.uniform(0.75, 1.25)


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Connection settings of a service client. `retry=None` disables retries."""

    base_url: str = ""
    api_key: str | None = None
    timeout: float = 30.0
    retry: RetryPolicy | None = RetryPolicy()


# =============================================================================
# Base Client
# =============================================================================


class ServiceClient(ABC):
    """
    Base class of the Palaver HTTP clients.

    The httpx client is created on first use and reused until `close()`.
    Non-2xx answers raise the ServiceError subtype of their status.

    Subclasses must implement:
    - name: Service identifier used in logs and errors
    """

    def __init__(self, config: ServiceConfig):
        self.config = config
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def name(self) -> str: ...

    def _get_auth_headers(self) -> dict[str, str]:
        if self.config.api_key:
            return {"Authorization": f"Bearer {self.config.api_key}"}
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers={"Accept": "application/json", **self._get_auth_headers()},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures as the policy allows.

        Raises:
            ServiceError: On a non-2xx answer or a failed transport
        """
        policy = self.config.retry
        retry = 0
        while True:
            try:
                return await self._send(method, path, params=params, json=json)
            except ServiceError as e:
                if policy is None or not e.retryable or retry >= policy.retries:
                    raise
                wait = policy.backoff(retry)
                retry += 1
                logger.info(f"{e}, retry {retry}/{policy.retries} in {wait:.2f}s")
                await asyncio.sleep(wait)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        client = await self._get_client()
        logger.debug(f"[{self.name}] {method} {path}")
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise TransientServiceError(f"{method} {path} timed out", self.name) from e
        except httpx.TransportError as e:
            raise TransientServiceError(f"{method} {path} failed: {e}", self.name) from e

        if not response.is_success:
            raise error_for_response(self.name, method, path, response)
        return response

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
