import json

import pytest

from rag_relay.llm.exceptions import GenerationError
from rag_relay.services.relay import DONE_EVENT, EventRelay, RelayState


def parse(frames):
    payloads = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        payloads.append(frame[len("data: "):-2])
    return payloads


def test_one_event_per_delta_then_done():
    relay = EventRelay(iter(["Elastic", "search is", " a search engine."]))

    assert relay.start() is True
    payloads = parse(relay.events())

    assert payloads[-1] == "[DONE]"
    texts = [json.loads(p)["text"] for p in payloads[:-1]]
    assert "".join(texts) == "Elasticsearch is a search engine."
    assert relay.state is RelayState.CLOSED_OK


def test_empty_generation_still_terminates():
    relay = EventRelay(iter([]))
    assert relay.start() is True
    assert list(relay.events()) == [DONE_EVENT]
    assert relay.state is RelayState.CLOSED_OK


def test_failure_before_output_is_not_streamed():
    def deltas():
        raise GenerationError("Could not reach the model service")
        yield

    relay = EventRelay(deltas())

    assert relay.start() is False
    assert relay.state is RelayState.CLOSED_ERROR
    assert relay.error == "Could not reach the model service"
    assert list(relay.events()) == []


def test_failure_after_output_reports_error_then_done():
    def deltas():
        yield "partial"
        raise GenerationError("stream interrupted")

    relay = EventRelay(deltas())
    assert relay.start() is True
    payloads = parse(relay.events())

    assert json.loads(payloads[0]) == {"text": "partial"}
    assert json.loads(payloads[1]) == {"error": "stream interrupted"}
    assert payloads[2] == "[DONE]"
    assert len(payloads) == 3
    assert relay.state is RelayState.CLOSED_ERROR


def test_unexpected_error_uses_generic_message():
    def deltas():
        yield "a"
        raise RuntimeError("internal detail")

    relay = EventRelay(deltas())
    relay.start()
    payloads = parse(relay.events())

    error = json.loads(payloads[1])["error"]
    assert "internal detail" not in error
    assert payloads.count("[DONE]") == 1


def test_exactly_one_terminal_event():
    for deltas in ([], ["a"], ["a", "b", "c"]):
        relay = EventRelay(iter(deltas))
        relay.start()
        payloads = parse(relay.events())
        assert payloads.count("[DONE]") == 1


def test_no_writes_after_close():
    relay = EventRelay(iter(["a", "b"]))
    relay.start()
    list(relay.events())

    assert list(relay.events()) == []


def test_double_close_is_noop():
    closed = []

    def deltas():
        try:
            yield "a"
            yield "b"
        finally:
            closed.append(True)

    relay = EventRelay(deltas())
    relay.start()
    relay.close()
    relay.close()

    assert relay.state is RelayState.CLOSED_ERROR
    assert closed == [True]
    assert list(relay.events()) == []


def test_client_disconnect_releases_generation():
    closed = []

    def deltas():
        try:
            yield "a"
            yield "b"
            yield "c"
        finally:
            closed.append(True)

    relay = EventRelay(deltas())
    relay.start()
    events = relay.events()
    next(events)
    events.close()

    assert closed == [True]
    assert relay.closed


def test_start_twice_is_rejected():
    relay = EventRelay(iter(["a"]))
    relay.start()
    with pytest.raises(RuntimeError):
        relay.start()


def test_second_start_keeps_first_delta():
    relay = EventRelay(iter(["Elastic", "search is", " a search engine."]))
    relay.start()
    with pytest.raises(RuntimeError):
        relay.start()

    texts = [json.loads(p)["text"] for p in parse(relay.events())[:-1]]
    assert "".join(texts) == "Elasticsearch is a search engine."


class BusyDeltas:
    """Delta stream whose first close() fails as if it were mid-next() elsewhere."""

    def __init__(self, deltas):
        self.deltas = iter(deltas)
        self.close_calls = 0
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        return next(self.deltas)

    def close(self):
        self.close_calls += 1
        if self.close_calls == 1:
            raise ValueError("generator already executing")
        self.closed = True


def test_busy_stream_is_released_by_streaming_thread():
    deltas = BusyDeltas(["a", "b", "c"])
    relay = EventRelay(deltas)
    relay.start()
    events = relay.events()
    next(events)

    relay.close()
    assert relay.closed
    assert not deltas.closed

    assert list(events) == []
    assert deltas.closed
