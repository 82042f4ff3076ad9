"""
SSE transport for the chat client.

Opens the long-lived GET /api/chat response and yields the `data` payload of
each server-sent event as text.
"""
import json
from typing import Iterable, Iterator, List, Optional, Tuple

import requests

from rag_relay.core.logging import get_logger

logger = get_logger(__name__)


class TransportError(Exception):
    """The connection failed without a structured error event.

    `server_message` holds the error text when the server answered with a
    JSON error body instead of a stream.
    """

    def __init__(self, message: str, server_message: Optional[str] = None):
        super().__init__(message)
        self.server_message = server_message


def parse_sse(lines: Iterable[str]) -> Iterator[str]:
    """
    Group SSE lines into event payloads.

    `data:` lines accumulate (joined by newlines) until a blank line
    dispatches the event; comment lines and other fields are ignored. An event
    left unterminated when the stream ends is dropped.
    """
    data_lines: List[str] = []
    for line in lines:
        if line == "":
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)


class SSEConnection:
    """One live connection to the chat endpoint."""

    def __init__(
        self,
        base_url: str,
        question: str,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, Optional[float]] = (10.0, None)
    ):
        self.url = f"{base_url.rstrip('/')}/api/chat"
        self.question = question
        self.session = session or requests.Session()
        self.timeout = timeout
        self._response: Optional[requests.Response] = None
        self.closed = False

    def open(self):
        """
        Send the request and check the server accepted it.

        Raises:
            TransportError: If the server is unreachable or answers with an error status
        """
        try:
            response = self.session.get(
                self.url,
                params={"message": self.question},
                headers={"Accept": "text/event-stream"},
                stream=True,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            self.closed = True
            raise TransportError(f"Could not connect to {self.url}: {e}") from e

        self._response = response
        if not response.ok:
            server_message = None
            try:
                server_message = response.json().get("error")
            except (ValueError, AttributeError):
                logger.debug("Error response had no JSON body")
            self.close()
            raise TransportError(f"Server answered HTTP {response.status_code}", server_message)

    def events(self) -> Iterator[str]:
        """
        Yield event payloads as they arrive.

        Raises:
            TransportError: If the connection breaks mid-stream
        """
        if self._response is None:
            raise TransportError("Connection is not open")

        def _lines() -> Iterator[str]:
            for raw in self._response.iter_lines():
                yield raw.decode("utf-8", errors="replace")

        try:
            yield from parse_sse(_lines())
        except requests.exceptions.RequestException as e:
            if self.closed:
                return
            raise TransportError(f"Connection lost: {e}") from e

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._response is not None:
            self._response.close()
