"""
Streaming Session Controller

Drives one request/response exchange with the completion service:

    IDLE -> AWAITING_RESPONSE -> STREAMING -> COMMITTING -> IDLE
    AWAITING_RESPONSE | STREAMING -> FAILED -> IDLE

Every content delta is accumulated and the whole reply so far is rendered
again, replacing the previous markup, because markdown structure (an
unclosed fence, say) can change meaning once later text arrives. The reply
is committed to whichever conversation was active when the session started.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import structlog

from ..domain.models import Message, Role
from ..metrics import COMMITS_DROPPED, DELTAS_RENDERED, FRAMES_DROPPED, SESSIONS_FAILED
from ..streaming.deltas import ContentDelta, FrameEvent, Malformed, StreamDone, extract
from ..streaming.frames import FrameDecoder
from .ledger import ConversationLedger
from .presenter import Presenter, Renderer, default_render, format_user_content
from .transport import CompletionRequest, CompletionTransport, TransportError

logger = structlog.get_logger()

ERROR_NOTICE = "Something went wrong, please try again. "


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    STREAMING = "streaming"
    COMMITTING = "committing"
    FAILED = "failed"


class SessionBusy(RuntimeError):
    """Raised when a message is sent while another exchange is in flight."""


@dataclass
class StreamingSession:
    """Transient state of one in-flight exchange."""

    conversation_id: str
    decoder: FrameDecoder = field(default_factory=FrameDecoder)
    text: str = ""
    done: bool = False
    visible: bool = True
    deltas: int = 0
    dropped_frames: int = 0


@dataclass
class SessionOutcome:
    """What happened during one call to ``SessionController.send``."""

    conversation_id: str
    ok: bool = False
    text: str = ""
    deltas: int = 0
    dropped_frames: int = 0
    committed: bool = False
    error: Optional[str] = None
    states: List[SessionState] = field(default_factory=list)


class SessionController:
    """Ties the frame decoder and delta extractor to the ledger and the view."""

    def __init__(
        self,
        ledger: ConversationLedger,
        transport: CompletionTransport,
        presenter: Presenter,
        render: Renderer = default_render,
        history_window: int = 1,
    ) -> None:
        self.ledger = ledger
        self.transport = transport
        self.presenter = presenter
        self.render = render
        self.history_window = history_window
        self.state = SessionState.IDLE
        self.session: Optional[StreamingSession] = None
        self._outcome: Optional[SessionOutcome] = None

    def _transition(self, state: SessionState) -> None:
        logger.debug("session_transition", from_state=self.state.value, to_state=state.value)
        self.state = state
        if self._outcome is not None:
            self._outcome.states.append(state)

    def detach(self) -> None:
        """Stop rendering the in-flight reply; it is still committed when it ends."""
        if self.session is not None and self.session.visible:
            self.session.visible = False
            logger.info("session_detached", conversation_id=self.session.conversation_id)

    async def send(self, text: str) -> SessionOutcome:
        """Append ``text`` as a user message and stream the reply to it."""
        if self.state != SessionState.IDLE:
            raise SessionBusy("A response is already being streamed")

        conversation = self.ledger.active or self.ledger.initialize()
        session = StreamingSession(conversation_id=conversation.id)
        outcome = SessionOutcome(conversation_id=conversation.id)
        self.session, self._outcome = session, outcome

        self.ledger.append(conversation.id, Message(role=Role.USER, content=text))
        self.presenter.show_message(Role.USER, format_user_content(text))
        self.presenter.scroll_to_bottom()

        try:
            self.presenter.set_input_enabled(False)
            self.presenter.show_pending()
            self._transition(SessionState.AWAITING_RESPONSE)
            request = CompletionRequest.for_history(
                conversation.id, conversation.messages, window=self.history_window
            )
            try:
                await self._consume(session, request)
            except TransportError as e:
                self._fail(session, outcome, str(e))
            except Exception as e:
                logger.exception("session_stream_error", conversation_id=session.conversation_id)
                self._fail(session, outcome, str(e))
            else:
                self._commit(session, outcome)
        finally:
            self.presenter.set_input_enabled(True)
            outcome.text = session.text
            outcome.deltas = session.deltas
            outcome.dropped_frames = session.dropped_frames
            self._transition(SessionState.IDLE)
            self.session, self._outcome = None, None

        return outcome

    async def _consume(self, session: StreamingSession, request: CompletionRequest) -> None:
        async with self.transport.stream(request) as chunks:
            self.presenter.hide_pending()
            if session.visible:
                self.presenter.open_assistant()
            self._transition(SessionState.STREAMING)

            async for chunk in chunks:
                for frame in session.decoder.feed(chunk):
                    self._apply(session, extract(frame))
                    if session.done:
                        break
                if session.done:
                    logger.debug("stream_done_sentinel", conversation_id=session.conversation_id)
                    return

        session.decoder.close()
        session.done = True
        logger.debug("stream_closed", conversation_id=session.conversation_id)

    def _apply(self, session: StreamingSession, event: FrameEvent) -> None:
        if isinstance(event, ContentDelta):
            session.text += event.text
            session.deltas += 1
            if session.visible:
                self.presenter.replace_assistant(self.render(session.text))
                self.presenter.scroll_to_bottom()
                DELTAS_RENDERED.inc()
        elif isinstance(event, Malformed):
            session.dropped_frames += 1
            FRAMES_DROPPED.inc()
        elif isinstance(event, StreamDone):
            session.done = True

    def _commit(self, session: StreamingSession, outcome: SessionOutcome) -> None:
        self._transition(SessionState.COMMITTING)
        outcome.ok = True
        conversation_id = session.conversation_id
        if conversation_id not in self.ledger:
            COMMITS_DROPPED.inc()
            logger.warning(
                "session_commit_dropped",
                conversation_id=conversation_id,
                response_length=len(session.text),
            )
            return
        self.ledger.append(conversation_id, Message(role=Role.ASSISTANT, content=session.text))
        self.ledger.ensure_title(conversation_id)
        outcome.committed = True
        logger.info(
            "session_committed",
            conversation_id=conversation_id,
            deltas=session.deltas,
            dropped_frames=session.dropped_frames,
            response_length=len(session.text),
        )

    def _fail(self, session: StreamingSession, outcome: SessionOutcome, error: str) -> None:
        self._transition(SessionState.FAILED)
        SESSIONS_FAILED.inc()
        outcome.error = error
        self.presenter.hide_pending()
        self.presenter.show_message(Role.SYSTEM, self.render(ERROR_NOTICE + error))
        logger.warning("session_failed", conversation_id=session.conversation_id, error=error)
