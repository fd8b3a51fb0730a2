"""Incremental Server-Sent-Events parser for the course-guide stream.

Turns a chunked byte stream into typed stream events:

- ``event: progress`` -> :class:`ProgressEvent`
- ``event: result``   -> :class:`ResultEvent` with a parsed :class:`CourseGuide`
- ``event: error``    -> :class:`ErrorEvent`

Frames are separated by a blank line. Text left in the buffer without a
closing blank line when the stream ends is discarded, never parsed.
"""

import asyncio
import codecs
from typing import AsyncIterable, AsyncIterator, NamedTuple

from pydantic import ValidationError

from aceai.app.core.logging import get_logger, get_log_context
from aceai.app.exceptions import StreamDecodeError
from aceai.app.services.models import (
    CourseGuide,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    StreamEvent,
)

logger = get_logger(__name__)

FRAME_DELIMITER = "\n\n"
DEFAULT_EVENT_NAME = "message"
UNKNOWN_ERROR_MESSAGE = "Unknown error"


class SSEFrame(NamedTuple):
    event: str
    data: str


def parse_frame(raw: str) -> SSEFrame | None:
    """Parse the text of one frame into ``(event, data)``.

    ``data:`` lines are stripped and joined with no separator.

    Returns:
        The frame, or None when the text is blank.
    """
    raw = raw.strip()
    if not raw:
        return None

    event = DEFAULT_EVENT_NAME
    data_parts: list[str] = []
    for line in raw.split("\n"):
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_parts.append(line[len("data:"):].strip())
    return SSEFrame(event, "".join(data_parts))


def classify_frame(frame: SSEFrame) -> StreamEvent | None:
    """Map a frame to a stream event.

    Unknown event names return None so newer backends can add event types.

    Raises:
        StreamDecodeError: If a ``result`` frame is not a course guide.
    """
    if frame.event == "progress":
        return ProgressEvent(text=frame.data)

    if frame.event == "result":
        try:
            course = CourseGuide.model_validate_json(frame.data)
        except ValidationError as e:
            logger.warning(
                f"Malformed result event: {e.error_count()} validation error(s)",
                extra=get_log_context(event="result"),
            )
            raise StreamDecodeError(str(e.errors()[0]["msg"]), raw=frame.data) from e
        return ResultEvent(payload=course)

    if frame.event == "error":
        return ErrorEvent(message=frame.data or UNKNOWN_ERROR_MESSAGE)

    logger.debug(
        f"Ignoring unknown event type: {frame.event}",
        extra=get_log_context(event=frame.event),
    )
    return None


class SSEStreamParser:
    """Reassembles frames from byte chunks.

    Holds an incremental UTF-8 decoder, so a multi-byte character split across
    two chunks is decoded once both halves have arrived, and a text buffer
    holding the not-yet-delimited tail of the stream.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def buffered(self) -> str:
        """Text received but not yet closed by a blank line."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[SSEFrame]:
        """Append a chunk and return every frame it completes, in order."""
        text = self._decoder.decode(chunk)
        # A lone "\r" at the end stays buffered until its "\n" arrives
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

        frames: list[SSEFrame] = []
        while True:
            end = self._buffer.find(FRAME_DELIMITER)
            if end == -1:
                break
            raw = self._buffer[:end]
            self._buffer = self._buffer[end + len(FRAME_DELIMITER):]
            frame = parse_frame(raw)
            if frame is not None:
                frames.append(frame)
        return frames

    def close(self) -> str:
        """End the stream and return the discarded trailing text."""
        leftover = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return leftover


async def iter_events(
    source: AsyncIterable[bytes],
    abort: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield stream events from a byte stream as frames complete.

    Iteration continues after a ``result`` event; the caller decides when to
    stop. Setting ``abort`` stops the loop before the next chunk or event is
    handed out. The source is closed on exit when it has ``aclose``.

    Args:
        source: Async iterable of raw byte chunks, e.g. ``response.aiter_bytes()``
        abort: Optional event used to abandon the stream early

    Raises:
        StreamDecodeError: If a ``result`` frame is malformed.
    """
    parser = SSEStreamParser()
    frame_count = 0

    def aborted() -> bool:
        return abort is not None and abort.is_set()

    try:
        async for chunk in source:
            if aborted():
                logger.info(f"Stream aborted after {frame_count} frame(s)")
                return
            for frame in parser.feed(chunk):
                frame_count += 1
                logger.debug(
                    f"Received frame #{frame_count}",
                    extra=get_log_context(event=frame.event),
                )
                event = classify_frame(frame)
                if event is None:
                    continue
                yield event
                if aborted():
                    logger.info(f"Stream aborted after {frame_count} frame(s)")
                    return

        leftover = parser.close()
        if leftover.strip():
            logger.debug(f"Discarding {len(leftover)} undelimited trailing character(s)")
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
