"""
Stream Consumer

Client side of the chat relay. Keeps the conversation for one session and
rebuilds the bot's answer from the event stream as it arrives.

Each exchange runs a small state machine:

    IDLE -> STREAMING -> DONE | ERROR

Its transition methods are the only code that writes to the open turn. Only
one exchange may be in flight: a new question is refused while the last
turn is incomplete.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import requests

from rag_relay.client.transport import SSEConnection, TransportError
from rag_relay.core.logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
GENERIC_FAILURE_NOTICE = "An error occurred. Please try again."


@dataclass
class Turn:
    """A question and the (possibly still growing) answer"""
    question: str
    answer_markdown: str = ""
    is_complete: bool = False
    failed: bool = False


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """One rendered chat bubble"""
    role: MessageRole
    markdown: str
    is_complete: bool = True


@dataclass
class Conversation:
    """Turns in the order they were asked. Append-only, kept in memory."""
    turns: List[Turn] = field(default_factory=list)

    def append(self, turn: Turn):
        self.turns.append(turn)

    @property
    def open_turn(self) -> Optional[Turn]:
        if self.turns and not self.turns[-1].is_complete:
            return self.turns[-1]
        return None

    def messages(self) -> List[Message]:
        """User/assistant messages in display order"""
        messages = []
        for turn in self.turns:
            messages.append(Message(MessageRole.USER, turn.question))
            messages.append(Message(MessageRole.ASSISTANT, turn.answer_markdown, turn.is_complete))
        return messages


class ExchangeState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


class Exchange:
    """One question/answer round trip over one connection."""

    def __init__(
        self,
        turn: Turn,
        connection: SSEConnection,
        on_render: Optional[Callable[[], None]] = None
    ):
        self.turn = turn
        self.connection = connection
        self.on_render = on_render or (lambda: None)
        self.state = ExchangeState.IDLE

    @property
    def finished(self) -> bool:
        return self.state in (ExchangeState.DONE, ExchangeState.ERROR)

    def open(self):
        if self.state is not ExchangeState.IDLE:
            return
        self.state = ExchangeState.STREAMING
        try:
            self.connection.open()
        except TransportError as e:
            self.on_transport_failure(e)

    def run(self):
        """Process events until the exchange reaches DONE or ERROR."""
        if self.state is ExchangeState.IDLE:
            self.open()
        if self.finished:
            return

        try:
            for payload in self.connection.events():
                if self.finished:
                    break
                self.on_event(payload)
                if self.finished:
                    break
        except TransportError as e:
            self.on_transport_failure(e)
            return

        if not self.finished:
            self.on_transport_failure(TransportError("Stream ended without a terminal event"))

    def on_event(self, payload: str):
        if self.state is not ExchangeState.STREAMING:
            return

        if payload == DONE_SENTINEL:
            self._complete(ExchangeState.DONE)
            return

        try:
            data = json.loads(payload)
        except ValueError as e:
            logger.error(f"Error parsing message: {e}")
            return
        if not isinstance(data, dict):
            logger.error(f"Unexpected event payload: {payload[:100]}")
            return

        if data.get("text"):
            self.on_delta(str(data["text"]))
        elif data.get("error"):
            self.on_error(str(data["error"]))

    def on_delta(self, text: str):
        if self.state is not ExchangeState.STREAMING:
            return
        self.turn.answer_markdown += text
        self.on_render()

    def on_error(self, message: str):
        if self.state is not ExchangeState.STREAMING:
            return
        logger.error(f"Server reported an error: {message}")
        self._fail(message)

    def on_transport_failure(self, error: TransportError):
        if self.state is not ExchangeState.STREAMING:
            return
        logger.error(f"Stream failed: {error}")
        self._fail(error.server_message or GENERIC_FAILURE_NOTICE)

    def abandon(self):
        """Stop listening; the turn keeps whatever arrived so far."""
        if self.finished:
            return
        self.turn.failed = True
        self._complete(ExchangeState.ERROR)

    def _fail(self, message: str):
        if self.turn.answer_markdown:
            self.turn.answer_markdown += "\n\n"
        self.turn.answer_markdown += message
        self.turn.failed = True
        self._complete(ExchangeState.ERROR)

    def _complete(self, state: ExchangeState):
        self.state = state
        self.turn.is_complete = True
        self.connection.close()
        self.on_render()


class StreamConsumer:
    """
    Chat session against a running relay server.

    Args:
        base_url: Server root, e.g. http://localhost:5000
        session: HTTP session shared by all exchanges
        on_render: Called with the conversation whenever it changes
        connection_factory: Builds the connection for a question (for tests)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        session: Optional[requests.Session] = None,
        on_render: Optional[Callable[[Conversation], None]] = None,
        connection_factory: Optional[Callable[[str], SSEConnection]] = None
    ):
        self.conversation = Conversation()
        self.on_render = on_render
        self._session = session or requests.Session()
        self._connection_factory = connection_factory or (
            lambda question: SSEConnection(base_url, question, session=self._session)
        )
        self._exchange: Optional[Exchange] = None

    @property
    def busy(self) -> bool:
        return self.conversation.open_turn is not None

    def submit(self, question: str) -> Optional[Exchange]:
        """
        Start a new exchange.

        Returns:
            The opened exchange, or None when the question is blank or an
            answer is still streaming
        """
        if not question or not question.strip():
            return None
        if self.busy:
            logger.warning("Still answering the previous question, submission ignored")
            return None

        self._release()

        turn = Turn(question=question)
        self.conversation.append(turn)
        exchange = Exchange(turn, self._connection_factory(question), self._render)
        self._exchange = exchange
        self._render()
        exchange.open()
        return exchange

    def consume(self, exchange: Optional[Exchange] = None) -> Optional[Turn]:
        """Drive an exchange (the current one by default) to completion."""
        exchange = exchange or self._exchange
        if exchange is None:
            return None
        exchange.run()
        return exchange.turn

    def ask(self, question: str) -> Optional[Turn]:
        """Submit a question and wait for the complete answer."""
        exchange = self.submit(question)
        if exchange is None:
            return None
        return self.consume(exchange)

    def close(self):
        """Release the live connection, if any."""
        self._release()

    def _release(self):
        if self._exchange is None:
            return
        self._exchange.abandon()
        self._exchange.connection.close()
        self._exchange = None

    def _render(self):
        if self.on_render is not None:
            self.on_render(self.conversation)
