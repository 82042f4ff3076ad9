"""
Event Relay

Re-frames text deltas as Server-Sent Events for the browser:

    data: {"text": "<delta>"}\n\n
    ...
    data: [DONE]\n\n

A failure after streaming has begun is reported in-band:

    data: {"error": "<message>"}\n\n
    data: [DONE]\n\n

A failure before the first byte is never streamed. `start()` pulls the first
delta while the response is still uncommitted, so the endpoint can answer
with a plain JSON error instead.

States: OPEN -> STREAMING -> CLOSED_OK | CLOSED_ERROR. Every stream that
reaches STREAMING ends with exactly one [DONE] unless the client goes away.
"""
import json
from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel

from rag_relay.core.logging import get_logger
from rag_relay.llm.exceptions import GenerationError
from rag_relay.models.response import DeltaEvent, ErrorEvent

logger = get_logger(__name__)

DONE_EVENT = "data: [DONE]\n\n"
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request."

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayState(str, Enum):
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED_OK = "closed_ok"
    CLOSED_ERROR = "closed_error"


def format_event(event: BaseModel) -> str:
    """Serialize one event as a single SSE frame."""
    return f"data: {json.dumps(event.model_dump())}\n\n"


def _error_message(error: Exception) -> str:
    if isinstance(error, GenerationError):
        return str(error) or GENERIC_ERROR_MESSAGE
    return GENERIC_ERROR_MESSAGE


class EventRelay:
    """Relays one generation stream to one HTTP response."""

    def __init__(self, deltas: Iterator[str]):
        self._deltas = deltas
        self._first: Optional[str] = None
        self._exhausted = False
        self._started = False
        self._release_pending = False
        self.state = RelayState.OPEN
        self.error: Optional[str] = None
        self.events_sent = 0

    @property
    def closed(self) -> bool:
        return self.state in (RelayState.CLOSED_OK, RelayState.CLOSED_ERROR)

    def start(self) -> bool:
        """
        Wait for the first delta before anything is written.

        Returns:
            True if the stream can be relayed. False if generation failed
            first; the relay is then closed and `error` holds the message.
        """
        if self._started:
            raise RuntimeError("Relay already started")
        if self.state is not RelayState.OPEN:
            raise RuntimeError(f"Relay cannot start from state {self.state.value}")
        self._started = True

        try:
            self._first = next(self._deltas)
        except StopIteration:
            self._exhausted = True
        except Exception as e:
            if isinstance(e, GenerationError):
                logger.error(f"Generation failed before streaming: {e}")
            else:
                logger.exception(f"Unexpected error before streaming: {e}")
            self.error = _error_message(e)
            self._finish(RelayState.CLOSED_ERROR)
            return False
        return True

    def events(self) -> Iterator[str]:
        """
        Yield the SSE frames for the whole stream.

        Yields nothing when the relay is already closed.
        """
        if self.state is not RelayState.OPEN:
            return

        self.state = RelayState.STREAMING
        try:
            try:
                if self._first is not None:
                    first, self._first = self._first, None
                    yield self._emit(DeltaEvent(text=first))
                if not self._exhausted:
                    for delta in self._deltas:
                        if self.closed:
                            # closed from another thread while this chunk was in flight
                            if self._release_pending:
                                self._release()
                            return
                        yield self._emit(DeltaEvent(text=delta))
                if self.closed:
                    return
            except Exception as e:
                if isinstance(e, GenerationError):
                    logger.error(f"Streaming error: {e}")
                else:
                    logger.exception(f"Unexpected streaming error: {e}")
                self.error = _error_message(e)
                yield self._emit(ErrorEvent(error=self.error))
                yield DONE_EVENT
                self._finish(RelayState.CLOSED_ERROR)
                return

            yield DONE_EVENT
            self._finish(RelayState.CLOSED_OK)
            logger.info(f"Stream completed ({self.events_sent} events)")
        finally:
            if not self.closed:
                # the client went away mid-stream
                logger.info(f"Client disconnected after {self.events_sent} events")
                self._finish(RelayState.CLOSED_ERROR)

    def close(self):
        """Close the relay and release the generation stream. Safe to call twice."""
        if self.closed:
            return
        self._finish(RelayState.CLOSED_ERROR)

    def _emit(self, event: BaseModel) -> str:
        self.events_sent += 1
        return format_event(event)

    def _finish(self, state: RelayState):
        if self.closed:
            return
        self.state = state
        self._release()

    def _release(self):
        close = getattr(self._deltas, "close", None)
        if close is None:
            return
        try:
            close()
            self._release_pending = False
        except ValueError:
            # the stream is mid-next() in a worker thread; events() closes it
            # once that chunk arrives
            self._release_pending = True
            logger.debug("Generation stream busy, release deferred to the streaming thread")
