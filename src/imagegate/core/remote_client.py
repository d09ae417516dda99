"""Async HTTP client for the remote generation API.

:class:`RemoteClient` wraps a pooled :class:`httpx.AsyncClient` and adds the
two behaviours the gateway relies on:

- **Bounded retry on submission.**  ``submit`` retries a request that fails
  without a response (any :class:`httpx.RequestError`) or comes back with a 5xx status, up to
  ``max_retries`` attempts, sleeping ``attempt * retry_delay`` seconds
  between attempts (1s, 2s, ... by default).  Any response below 500,
  including 4xx, is final.  ``poll`` never retries; the orchestrator's tick
  budget bounds polling instead.
- **Error classification.**  Non-2xx responses become gateway errors:
  401 -> :class:`UnauthorizedError`, 400 -> :class:`InvalidRequestError`,
  429 and everything else -> :class:`ExternalAPIError`.

Usage
-----
::

    async with RemoteClient("https://modelslab.com/api/v6", api_key) as client:
        body = await client.submit("/images/text2img", payload)
        status = await client.poll(f"/images/text2img/{body['id']}")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from imagegate.core.errors import (
    ExternalAPIError,
    InternalServerError,
    InvalidRequestError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "imagegate/1.0"


class RemoteClient:
    """Retrying JSON client for the remote generation API.

    Args:
        base_url: API root, e.g. ``https://modelslab.com/api/v6``
        api_key: Credential for the remote API
        max_retries: Attempts for ``submit`` (must be at least 1)
        timeout: Per-request timeout in seconds
        retry_delay: Backoff unit in seconds; attempt ``n`` is followed by
            a wait of ``n * retry_delay``
        api_key_in_header: Send the key as ``Authorization: Bearer`` instead
            of as ``key`` in the JSON body
        transport: Optional httpx transport (tests pass a ``MockTransport``)
        sleep: Coroutine used for backoff waits
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        max_retries: int = 3,
        timeout: float = 30.0,
        retry_delay: float = 1.0,
        api_key_in_header: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.api_key_in_header = api_key_in_header
        self._api_key = api_key
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

        logger.info(
            f"RemoteClient initialised: base_url={self.base_url}, "
            f"max_retries={max_retries}, key_length={len(api_key)}"
        )

    async def __aenter__(self) -> RemoteClient:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST ``body`` to ``path`` with retry on transient failure.

        Args:
            path: Endpoint path relative to the base URL
            body: JSON request body; the API key is added to a copy

        Returns:
            dict[str, Any]
                Decoded JSON response body

        Raises
        ------
        ExternalAPIError
            Transport failures on every attempt, 5xx on the last attempt,
            429, or any other unexpected status
        UnauthorizedError
            Remote answered 401
        InvalidRequestError
            Remote answered 400
        InternalServerError
            A 2xx body that is not a JSON object
        """
        payload = dict(body)
        headers = {"Content-Type": "application/json"}
        if self.api_key_in_header:
            headers["Authorization"] = f"Bearer {self._api_key}"
        else:
            payload["key"] = self._api_key

        response = await self._send_with_retry("POST", path, json=payload, headers=headers)
        return self._decode(response)

    async def poll(self, path: str) -> dict[str, Any]:
        """GET ``path`` once.

        Raises:
            ExternalAPIError: On transport failure or an unexpected status,
                plus the same classification as :meth:`submit`
        """
        client = self._ensure_client()
        headers = {}
        if self.api_key_in_header:
            headers["Authorization"] = f"Bearer {self._api_key}"

        logger.debug(f"GET {path}")
        try:
            response = await client.get(path, headers=headers)
        except httpx.RequestError as exc:
            raise ExternalAPIError("Failed to poll status", cause=exc) from exc
        return self._decode(response)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send_with_retry(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._ensure_client()
        response: httpx.Response | None = None
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            logger.debug(f"{method} {path} (attempt {attempt}/{self.max_retries})")
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.RequestError as exc:
                response = None
                last_error = exc
                logger.warning(
                    f"{method} {path} failed (attempt {attempt}/{self.max_retries}): {exc!r}"
                )
            else:
                if response.status_code < 500:
                    return response
                logger.warning(
                    f"{method} {path} returned {response.status_code} "
                    f"(attempt {attempt}/{self.max_retries})"
                )

            if attempt < self.max_retries:
                await self._sleep(attempt * self.retry_delay)

        if response is None:
            raise ExternalAPIError(
                f"HTTP request failed after {self.max_retries} attempts",
                cause=last_error,
            )
        return response

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        if not response.is_success:
            raise self._classify_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise InternalServerError("Failed to decode response", cause=exc) from exc
        if not isinstance(data, dict):
            raise InternalServerError("Failed to decode response")
        return data

    def _classify_error(self, response: httpx.Response) -> Exception:
        status = response.status_code
        logger.debug(f"Received error response: status_code={status}, body={response.text[:500]}")

        message = None
        parsed = True
        try:
            data = response.json()
        except ValueError:
            parsed = False
        else:
            if isinstance(data, dict):
                if isinstance(data.get("message"), str) and data["message"]:
                    message = data["message"]
            else:
                parsed = False

        if status == 401:
            return UnauthorizedError("Invalid or missing API key")
        if status == 400:
            return InvalidRequestError(message or "Invalid request parameters")
        if status == 429:
            return ExternalAPIError("Rate limit exceeded")

        if not parsed:
            if "cloudflare" in response.text.lower():
                return ExternalAPIError(
                    "Request blocked by Cloudflare",
                    cause=RuntimeError(f"status code: {status}"),
                )
            return ExternalAPIError(
                f"API error with status code {status}",
                cause=RuntimeError(f"raw response: {response.text[:500]}"),
            )
        return ExternalAPIError(message or "Unexpected API error")
