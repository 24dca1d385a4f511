"""Outbound HTTP client with timeout and exponential backoff.

Transient failures (timeouts, connection errors, HTTP 5xx and 429) are
retried sequentially with ``retry_delay * 2^attempt`` between attempts.
Anything else is raised to the caller on the first occurrence.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_MS = 30000
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000


def is_retryable_error(error: BaseException) -> bool:
    """Check whether a failed request is worth repeating.

    Args:
        error: Exception raised by httpx

    Returns:
        True for timeouts, network errors, 5xx and 429 responses
    """
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status == 429
    # TimeoutException is a TransportError subclass
    return isinstance(error, httpx.TransportError)


def is_timeout_error(error: BaseException) -> bool:
    """Check whether an error was caused by a request timeout."""
    if isinstance(error, httpx.TimeoutException):
        return True
    message = str(error).lower()
    return "timeout" in message or "timed out" in message


class RetryingHttpClient:
    """JSON-over-HTTP client used by the gateway adapters.

    A fresh ``httpx.AsyncClient`` is opened per request so the client
    holds no connection state between calls.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
        retry_delay: int = DEFAULT_RETRY_DELAY_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            timeout: Per-request timeout in milliseconds
            retries: Number of retries after the first attempt
            retry_delay: Base backoff delay in milliseconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self._transport = transport
        self._sleep = asyncio.sleep

    def calculate_retry_delay(self, attempt: int) -> float:
        """Calculate retry delay in seconds with exponential backoff.

        Formula: retry_delay * 2^attempt
        """
        return self.retry_delay * (2 ** attempt) / 1000

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return attempt < self.retries and is_retryable_error(error)

    async def _send(
        self,
        method: str,
        url: str,
        payload: Optional[dict],
        headers: dict,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout / 1000,
            transport=self._transport,
        ) as client:
            response = await client.request(
                method=method,
                url=url,
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
            return response

    async def request(
        self,
        method: str,
        url: str,
        payload: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Raises:
            httpx.HTTPError: The last error once retries are exhausted,
                or the first non-retryable one
        """
        request_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        attempt = 0
        while True:
            try:
                return await self._send(method, url, payload, request_headers)
            except httpx.HTTPError as e:
                if not self.should_retry(attempt, e):
                    raise

                delay = self.calculate_retry_delay(attempt)
                logger.warning(
                    "Retrying %s %s after error: %s (attempt %d/%d, delay %.3fs)",
                    method, url, e, attempt + 1, self.retries, delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def post_json(
        self,
        url: str,
        payload: dict,
        headers: Optional[dict] = None,
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        response = await self.request("POST", url, payload, headers)
        return response.json() if response.content else {}
