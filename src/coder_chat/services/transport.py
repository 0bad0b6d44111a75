"""HTTP transport for the streaming completion endpoint."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import httpx
import structlog
from pydantic import BaseModel

from ..domain.models import Message, new_id

logger = structlog.get_logger()


class TransportError(Exception):
    """Network failure or non-success status from the completion service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CompletionRequest(BaseModel):
    """Body of one streamed completion request."""

    id: str
    conversation_id: str
    messages: List[Message]
    stream: bool = True

    @classmethod
    def for_history(
        cls, conversation_id: str, history: List[Message], window: int = 1
    ) -> "CompletionRequest":
        """Build a request carrying only the trailing ``window`` messages."""
        trailing = history[-window:] if window > 0 else []
        return cls(id=new_id(), conversation_id=conversation_id, messages=trailing)


class CompletionTransport:
    """Issues completion requests and exposes the raw response body."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        completion_path: str = "/v1/chat/completions",
    ) -> None:
        self.client = client
        self.completion_path = completion_path

    @classmethod
    def from_settings(cls, settings) -> "CompletionTransport":
        # Reads may stall indefinitely; only connecting is bounded.
        timeout = httpx.Timeout(None, connect=settings.connect_timeout)
        client = httpx.AsyncClient(base_url=settings.base_url, timeout=timeout)
        return cls(client, completion_path=settings.completion_path)

    @asynccontextmanager
    async def stream(self, request: CompletionRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open the request and yield an iterator over the body's byte chunks.

        Raises ``TransportError`` for network failures and non-2xx statuses;
        the body of a failed response is never read.
        """
        body = request.model_dump(mode="json")
        logger.info(
            "completion_request_started",
            request_id=request.id,
            conversation_id=request.conversation_id,
            messages=len(request.messages),
        )
        try:
            async with self.client.stream("POST", self.completion_path, json=body) as response:
                if not response.is_success:
                    logger.warning(
                        "completion_request_rejected",
                        request_id=request.id,
                        status_code=response.status_code,
                    )
                    raise TransportError(
                        f"API responded with status {response.status_code}",
                        status_code=response.status_code,
                    )
                yield response.aiter_bytes()
        except httpx.HTTPError as e:
            logger.error("completion_request_failed", request_id=request.id, error=str(e))
            raise TransportError(str(e)) from e

    async def aclose(self) -> None:
        await self.client.aclose()
