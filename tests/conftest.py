"""Shared test fixtures for the chat client."""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from coder_chat.repositories.memory import InMemoryStorage
from coder_chat.services.ledger import ConversationLedger
from coder_chat.services.transport import CompletionTransport


def sse(payload: str) -> bytes:
    return f"data: {payload}\n\n".encode("utf-8")


def delta_frame(content: str) -> bytes:
    return sse('{"choices":[{"delta":{"content":%s}}]}' % json.dumps(content))


DONE = sse("[DONE]")


class RecordingPresenter:
    """Presenter that records every call for assertions."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.input_enabled = True
        self.pending = False
        self.assistant: Optional[str] = None
        self.messages: List[tuple] = []
        self.sidebar: List = []
        self.sidebar_active: Optional[str] = None

    def clear(self) -> None:
        self.calls.append(("clear",))
        self.messages = []

    def show_message(self, role, markup: str) -> None:
        self.calls.append(("show_message", role, markup))
        self.messages.append((role, markup))

    def show_pending(self) -> None:
        self.calls.append(("show_pending",))
        self.pending = True

    def hide_pending(self) -> None:
        self.calls.append(("hide_pending",))
        self.pending = False

    def open_assistant(self) -> None:
        self.calls.append(("open_assistant",))
        self.assistant = ""

    def replace_assistant(self, markup: str) -> None:
        self.calls.append(("replace_assistant", markup))
        self.assistant = markup

    def scroll_to_bottom(self) -> None:
        self.calls.append(("scroll_to_bottom",))

    def set_input_enabled(self, enabled: bool) -> None:
        self.calls.append(("set_input_enabled", enabled))
        self.input_enabled = enabled

    def show_conversations(self, items: Sequence, active_id: Optional[str]) -> None:
        self.calls.append(("show_conversations", len(items), active_id))
        self.sidebar = list(items)
        self.sidebar_active = active_id

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def replaced(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "replace_assistant"]


class ScriptedTransport:
    """Transport double that replays byte chunks.

    ``gate`` (an ``asyncio.Event``) holds the stream open before chunk
    ``gate_at`` so tests can interleave other actions with an in-flight read.
    """

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
        gate_at: int = 0,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.gate = gate
        self.gate_at = gate_at
        self.requests = []

    @asynccontextmanager
    async def stream(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        yield self._body()

    async def _body(self):
        for index, chunk in enumerate(self.chunks):
            if self.gate is not None and index == self.gate_at:
                await self.gate.wait()
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


class Clock:
    """Deterministic clock, one second apart per call."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FailingStorage(InMemoryStorage):
    """Storage whose writes can be switched to fail."""

    def __init__(self, initial=None) -> None:
        super().__init__(initial)
        self.fail_writes = False

    def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        super().set_item(key, value)


def completion_app(chunks: Sequence[bytes] = (), status_code: int = 200) -> FastAPI:
    """A stand-in completion service streaming fixed chunks."""
    app = FastAPI()
    app.state.requests = []

    @app.post("/v1/chat/completions")
    async def completions(request: Request):
        app.state.requests.append(await request.json())
        if status_code != 200:
            return JSONResponse({"error": "unavailable"}, status_code=status_code)

        async def body():
            for chunk in chunks:
                yield chunk

        return StreamingResponse(body(), media_type="text/event-stream")

    return app


def asgi_transport(app: FastAPI) -> CompletionTransport:
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return CompletionTransport(client)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def ledger(storage, clock) -> ConversationLedger:
    return ConversationLedger(storage, clock=clock)


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()
