"""
HTTP agent backend client for turnstream.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from ..config import AgentConfig
from ..constants import (
    PERMISSION_RETRY_ATTEMPTS,
    PERMISSION_RETRY_BACKOFF,
    PERMISSION_RETRY_DELAY,
    RETRYABLE_STATUS_CODES,
)
from ..errors import PermissionActionError, TransportError, UnauthorizedError
from ..utils import retry, truncate_string
from .base import AgentBackend, TurnRequest


logger = logging.getLogger(__name__)


def is_retryable_permission_error(error: BaseException) -> bool:
    """Check whether a failed permission action is worth retrying.

    Network-level failures and gateway/rate-limit statuses are retried;
    anything else (including rejected credentials) is final.
    """
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, PermissionActionError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


class AgentClient(AgentBackend):
    """
    Agent backend reached over HTTP.

    Turns are opened with a streaming POST to the chat endpoint; the body
    of the response is handed out chunk by chunk, exactly as received.
    Permission decisions are POSTed to the permission endpoint.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_attempts: int = PERMISSION_RETRY_ATTEMPTS,
        retry_delay: float = PERMISSION_RETRY_DELAY,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Agent connection configuration
            http_client: Shared httpx client; a short-lived one is created per call if omitted
            retry_attempts: Attempts for permission actions
            retry_delay: Initial delay between permission action attempts
        """
        super().__init__(config)
        self._http_client = http_client
        self._send_permission = retry(
            max_attempts=retry_attempts,
            delay=retry_delay,
            backoff=PERMISSION_RETRY_BACKOFF,
            exceptions=(httpx.TransportError, PermissionActionError),
            should_retry=is_retryable_permission_error,
            on_retry=self._log_retry,
        )(self._send_permission_once)

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a temporary one closed afterwards."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            yield client

    async def stream_turn(self, request: TurnRequest) -> AsyncIterator[bytes]:
        """Open the chat stream and yield raw byte chunks."""
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self.chat_url(),
                    headers=self._build_headers(),
                    json=request.to_payload(),
                    timeout=self._config.timeout,
                ) as response:
                    if response.status_code in (401, 403):
                        raise UnauthorizedError(
                            f"Agent backend rejected credentials ({response.status_code})"
                        )
                    if response.is_error:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise TransportError(
                            f"Agent backend returned {response.status_code}: "
                            f"{truncate_string(body, 200)}",
                            status_code=response.status_code,
                        )

                    async for chunk in response.aiter_bytes():
                        yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Stream read failed: {e}")
            raise TransportError(f"Stream read failed: {e}") from e

    async def respond_to_permission(self, permission_id: str, approved: bool) -> dict:
        """Send an approve/deny decision, retrying transient failures."""
        try:
            return await self._send_permission(permission_id, approved)
        except httpx.HTTPError as e:
            raise PermissionActionError(
                permission_id, f"Permission request failed: {e}"
            ) from e

    async def _send_permission_once(self, permission_id: str, approved: bool) -> dict:
        async with self._client() as client:
            response = await client.post(
                self.permission_url(permission_id),
                headers=self._build_headers(),
                json={"approved": approved},
                timeout=self._config.timeout,
            )
        if response.status_code in (401, 403):
            raise UnauthorizedError(
                f"Agent backend rejected credentials ({response.status_code})"
            )
        if response.is_error:
            raise PermissionActionError(
                permission_id,
                f"Permission backend error {response.status_code}: "
                f"{truncate_string(response.text, 200)}",
                status_code=response.status_code,
            )
        return self._json_body(response)

    async def get_permission(self, permission_id: str) -> dict:
        """Look up a permission on the backend."""
        try:
            async with self._client() as client:
                response = await client.get(
                    self.permission_url(permission_id),
                    headers=self._build_headers(),
                    timeout=self._config.timeout,
                )
        except httpx.HTTPError as e:
            raise TransportError(f"Permission lookup failed: {e}") from e

        if response.status_code in (401, 403):
            raise UnauthorizedError(
                f"Agent backend rejected credentials ({response.status_code})"
            )
        if response.is_error:
            raise TransportError(
                f"Permission lookup returned {response.status_code}",
                status_code=response.status_code,
            )
        return self._json_body(response)

    @staticmethod
    def _json_body(response: httpx.Response) -> dict:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"raw": response.text}
        return data if isinstance(data, dict) else {"result": data}

    @staticmethod
    def _log_retry(attempt: int, error: BaseException) -> None:
        logger.warning(f"Permission action attempt {attempt} failed, retrying: {error}")
