"""Delta extraction from completion-stream frames.

Every frame is classified into exactly one outcome variant. Payloads are
decoded against an explicit schema rather than probed field by field, so a
payload of the wrong shape turns into a ``Malformed`` outcome that the
caller drops.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger()

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class DeltaBody(BaseModel):
    content: Optional[str] = None


class Choice(BaseModel):
    delta: DeltaBody = DeltaBody()


class ChunkPayload(BaseModel):
    """The subset of a streamed completion chunk the client reads."""

    choices: List[Choice]


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class StreamDone:
    pass


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Malformed:
    reason: str
    payload: str


FrameEvent = Union[ContentDelta, StreamDone, Skipped, Malformed]


def frame_payload(frame: str) -> Optional[str]:
    """Join the frame's ``data:`` lines, or return None if it has none.

    Comment lines (``:``) and other fields such as ``event:`` are ignored.
    """
    data_lines = []
    for line in frame.split("\n"):
        if not line.startswith(DATA_PREFIX):
            continue
        value = line[len(DATA_PREFIX):]
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)
    if not data_lines:
        return None
    return "\n".join(data_lines)


def extract(frame: str) -> FrameEvent:
    """Classify a single complete frame."""
    payload = frame_payload(frame)
    if payload is None:
        return Skipped("not a data frame")
    if payload.strip() == DONE_SENTINEL:
        return StreamDone()

    try:
        chunk = ChunkPayload.model_validate_json(payload)
    except ValidationError as e:
        logger.warning("frame_payload_invalid", error=str(e), payload=payload[:200])
        return Malformed(reason=str(e), payload=payload)

    if not chunk.choices:
        logger.warning("frame_payload_invalid", error="empty choices", payload=payload[:200])
        return Malformed(reason="empty choices", payload=payload)

    content = chunk.choices[0].delta.content
    if not content:
        return Skipped("no content")
    return ContentDelta(content)


def iter_events(frames: Iterable[str]) -> Iterator[FrameEvent]:
    """Yield the outcome of each frame in order, ending at the first ``StreamDone``."""
    for frame in frames:
        event = extract(frame)
        yield event
        if isinstance(event, StreamDone):
            return


def iter_deltas(frames: Iterable[str]) -> Iterator[str]:
    """Yield only the content text, in arrival order, up to ``[DONE]``."""
    for event in iter_events(frames):
        if isinstance(event, ContentDelta):
            yield event.text
