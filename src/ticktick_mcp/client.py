"""
Resilient HTTP client for the TickTick Open API.

Every call is authenticated with a bearer token, bounded by a timeout, and
retried with exponential backoff when the failure is transient. Failures are
raised as ``TickTickError`` subclasses.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ticktick_mcp.errors import (
    ForbiddenError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ResponseParseError,
    ServerError,
    TickTickError,
    UnauthorizedError,
)
from ticktick_mcp.models import TickTickConfig

logger = logging.getLogger(__name__)

BASE_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 10.0
RETRYABLE_SERVER_STATUSES = (500, 502, 503, 504)
PERMANENT_ERROR_CODES = ("unknown_exception",)

TASK_NOT_FOUND_HINT = (
    "Task not found in project. Re-list projects and project tasks to refresh ids."
)
PROJECT_NOT_FOUND_HINT = (
    "Project not found. Re-list projects to refresh ids."
)
SERVER_FAILURE_HINT = (
    "The server kept failing for this {entity}. Check that the ids are current "
    "by re-listing projects and tasks."
)


def retry_delay(attempt: int) -> float:
    """Backoff delay in seconds before retry number ``attempt`` (0-based)."""
    return min(BASE_RETRY_DELAY * (2 ** attempt), MAX_RETRY_DELAY)


class TickTickClient:
    """HTTP request engine for the TickTick Open API."""

    def __init__(
        self,
        config: Optional[TickTickConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or TickTickConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.timeout = self.config.timeout
        self.max_retries = self.config.max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "TickTickClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _resolve_token(self, token: Optional[str]) -> str:
        resolved = token or self.config.access_token
        if not resolved:
            raise UnauthorizedError(
                "No access token configured. Pass one explicitly or configure "
                "TICKTICK_ACCESS_TOKEN."
            )
        return resolved

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Any:
        """
        Perform one logical API call, retrying transient failures.

        Args:
            method: HTTP method
            path: Endpoint path relative to the base URL (e.g. "/project")
            json: JSON body for POST requests
            token: Bearer token overriding the configured one

        Returns:
            Parsed JSON body, or None for empty or non-JSON success bodies

        Raises:
            TickTickError: Classified failure, after retries are exhausted
        """
        headers = self._get_headers(self._resolve_token(token))
        url = path if path.startswith("/") else f"/{path}"

        attempt = 0
        while True:
            try:
                return await self._send(method, url, json, headers)
            except TickTickError as e:
                exhausted = attempt >= self.max_retries
                if not self._should_retry(e) or exhausted:
                    self._attach_hint(e, url)
                    if e.retryable and exhausted:
                        logger.error("%s %s failed after %d attempts: %s",
                                     method, url, attempt + 1, e.message)
                    else:
                        logger.error("%s %s failed: %s", method, url, e.message)
                    raise

                delay = retry_delay(attempt)
                logger.warning("%s %s failed (%s), retrying in %.1fs (%d/%d)",
                               method, url, e.kind, delay, attempt + 1, self.max_retries)
                await asyncio.sleep(delay)
                attempt += 1

    @staticmethod
    def _should_retry(error: TickTickError) -> bool:
        if isinstance(error, NotFoundError):
            return False
        return error.retryable

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]],
        headers: Dict[str, str],
    ) -> Any:
        client = await self._get_client()
        logger.debug("%s %s", method, url)
        try:
            # httpx timeouts apply per phase; wait_for bounds the whole call
            response = await asyncio.wait_for(
                client.request(method, url, json=body, headers=headers), self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise RequestTimeoutError(
                f"Request timed out after {self.timeout:g}s: {method} {url}"
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return self._parse_body(response)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if not response.content or "json" not in content_type.lower():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ResponseParseError(
                f"Could not parse response body as JSON: {e}",
                status=response.status_code,
                details={"body": response.text[:500]},
            ) from e

    @staticmethod
    def _error_from_response(response: httpx.Response) -> TickTickError:
        """Map a non-success response to the matching error type."""
        status = response.status_code
        text = response.text
        details: Optional[Dict[str, Any]] = None
        if text:
            try:
                body = response.json()
            except ValueError:
                body = text
            details = body if isinstance(body, dict) else {"body": body}

        message = f"API request failed: {status} {response.reason_phrase}".rstrip()
        if details and details.get("errorMessage"):
            message = f"{message}: {details['errorMessage']}"

        if status == 401:
            return UnauthorizedError(message, status=status, details=details)
        if status == 403:
            return ForbiddenError(message, status=status, details=details)
        if status == 404:
            return NotFoundError(message, status=status, details=details)
        if status == 429:
            return RateLimitedError(message, status=status, details=details)

        # unmapped statuses (400, 409, 422...) are never retried, whatever the body says
        retryable = status in RETRYABLE_SERVER_STATUSES
        if details and details.get("errorCode") in PERMANENT_ERROR_CODES:
            retryable = False
        return ServerError(message, status=status, retryable=retryable, details=details)

    @staticmethod
    def _attach_hint(error: TickTickError, url: str) -> None:
        if error.hint:
            return
        is_task = "/task" in url
        is_project = url.startswith("/project")
        if not (is_task or is_project):
            return
        if isinstance(error, NotFoundError):
            error.hint = TASK_NOT_FOUND_HINT if is_task else PROJECT_NOT_FOUND_HINT
        elif isinstance(error, ServerError) and error.status == 500:
            error.hint = SERVER_FAILURE_HINT.format(entity="task" if is_task else "project")
