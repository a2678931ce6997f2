"""
Async client for the Tether relay.

Covers both sides of a session: the sender creates it and posts messages
with the write key, the viewer polls for them with the read key.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from tether.exceptions import (
    ConcurrencyError,
    InvalidKeyError,
    MalformedBodyError,
    MessageLimitExceededError,
    PayloadTooLargeError,
    RelayError,
    SessionExpiredError,
    SessionInitError,
    SessionNotFoundError,
    StorageError,
)
from tether.sessions.session_state import MessagePage, PostResult, RelayMessage

logger = logging.getLogger('tether.client')

DEFAULT_POLL_INTERVAL = 2.0


class RelayClient:
    """Async client for the relay session endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8787",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Relay root URL
            timeout: Per-request timeout in seconds
            max_retries: Retries for idempotent requests on transient failures
            backoff_factor: First retry delay; doubles on each further attempt
            transport: Optional httpx transport (e.g. ``httpx.ASGITransport``)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.transport = transport
        self.session: Optional[httpx.AsyncClient] = None

    def _create_session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport
        )

    def _client(self) -> httpx.AsyncClient:
        if self.session is None:
            self.session = self._create_session()
        return self.session

    async def __aenter__(self):
        """Async context manager entry."""
        self._client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if self.session is not None:
            await self.session.aclose()
            self.session = None

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make an idempotent HTTP request, retrying transient failures.

        Retries on connection errors, timeouts and 502/503/504 responses with
        exponential backoff.
        """
        retry_status_codes = {502, 503, 504}

        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client().request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError) as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning(f"{method} {url} failed ({e!r}), retrying")
                await asyncio.sleep(self.backoff_factor * (2 ** attempt))
                continue

            if response.status_code in retry_status_codes and attempt < self.max_retries:
                logger.warning(f"{method} {url} returned {response.status_code}, retrying")
                await asyncio.sleep(self.backoff_factor * (2 ** attempt))
                continue

            return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, session_id: Optional[str], key_type: Optional[str]):
        """
        Raise the relay exception matching an error response.

        ``key_type`` is None for session creation, where a 500 means the
        relay could not initialize the session.
        """
        if response.is_success:
            return

        try:
            message = response.json().get('error')
        except ValueError:
            message = None

        status_code = response.status_code
        error: Optional[RelayError] = None
        if status_code == 404:
            error = SessionNotFoundError(session_id)
        elif status_code == 410:
            error = SessionExpiredError(session_id)
        elif status_code == 403:
            error = InvalidKeyError(session_id, key_type)
        elif status_code == 413:
            error = PayloadTooLargeError(session_id)
        elif status_code == 429:
            error = MessageLimitExceededError(session_id)
        elif status_code == 400:
            error = MalformedBodyError(session_id)
        elif status_code == 409:
            error = ConcurrencyError(session_id, 'request')
        elif status_code == 503:
            error = StorageError('relay', 'request', resource_id=session_id)
        elif status_code == 500 and key_type is None:
            error = SessionInitError(session_id)

        if error is None:
            response.raise_for_status()
            return

        if message:
            error.message = message
            error.args = (message,)
        raise error

    async def create_session(self) -> dict[str, Any]:
        """
        Create a new session.

        Returns:
            ``{"sessionId", "writeKey", "readKey", "expiresInSeconds"}``
        """
        resp = await self._client().post("/v1/sessions")
        self._raise_for_status(resp, None, None)
        return resp.json()

    async def post_message(self, session_id: str, write_key: str, body: Any) -> PostResult:
        """Post a JSON message. Never retried, so a message is sent at most once."""
        resp = await self._client().post(
            f"/v1/sessions/{session_id}/messages",
            params={"w": write_key},
            json=body
        )
        self._raise_for_status(resp, session_id, 'write')
        data = resp.json()
        return PostResult(seq=data['seq'], timestamp=data['timestamp'])

    async def get_messages(self, session_id: str, read_key: str, since: int = 0) -> MessagePage:
        """Fetch messages with seq greater than ``since``."""
        resp = await self._request_with_retry(
            "GET",
            f"/v1/sessions/{session_id}/messages",
            params={"r": read_key, "since": since}
        )
        self._raise_for_status(resp, session_id, 'read')
        data = resp.json()
        return MessagePage(
            messages=[RelayMessage.from_dict(m) for m in data['messages']],
            next_since=data['nextSince']
        )

    async def poll(
        self,
        session_id: str,
        read_key: str,
        since: int = 0,
        interval: float = DEFAULT_POLL_INTERVAL
    ) -> AsyncIterator[RelayMessage]:
        """
        Yield new messages as they arrive, polling every ``interval`` seconds.

        Runs until the caller stops iterating or the relay answers with an
        error (for instance once the session expires).
        """
        while True:
            page = await self.get_messages(session_id, read_key, since=since)
            for message in page.messages:
                yield message
            since = page.next_since
            await asyncio.sleep(interval)
