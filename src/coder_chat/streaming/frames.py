"""Incremental decoder for server-sent event framing.

Bytes arrive in whatever chunks the transport hands over. The decoder keeps
the undecoded tail between calls and only releases frames once their
terminating blank line has been seen, so the frames produced are the same
no matter where the chunk boundaries fall.
"""

import codecs
from typing import List

import structlog

logger = structlog.get_logger()

FRAME_DELIMITER = "\n\n"


class FrameDecoder:
    """Turns a chunked byte stream into complete event frames."""

    def __init__(self, encoding: str = "utf-8") -> None:
        # Stateful decode so multi-byte characters may straddle chunks;
        # malformed bytes become U+FFFD instead of raising.
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Decode ``chunk`` and return every frame it completes, in order."""
        text = self._decoder.decode(chunk)
        if not text:
            return []
        frames = self._split(self.buffer + text)
        self.buffer = frames.pop()
        return frames

    def close(self) -> str:
        """Flush pending bytes and return the undelivered tail.

        A tail without a terminating blank line is never dispatched as a
        frame; it is handed back so the caller can log it.
        """
        text = self._decoder.decode(b"", final=True)
        tail = self.buffer + text
        self.buffer = ""
        if tail.strip():
            logger.debug("frame_tail_discarded", length=len(tail))
        return tail

    @staticmethod
    def _split(text: str) -> List[str]:
        # A "\r" left at the end of the buffer meets its "\n" here, so the
        # normalisation is independent of chunk boundaries.
        return text.replace("\r\n", "\n").split(FRAME_DELIMITER)

