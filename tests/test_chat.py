import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from rag_relay.core.config import Settings
from rag_relay.llm.exceptions import GenerationError
from rag_relay.main import app
from rag_relay.rag.prompt import PromptBuilder
from rag_relay.rag.retriever import Retriever
from rag_relay.services.chat_service import ChatService, get_chat_service

from fakes import FRAGMENT, FakeLLM, UnreachableSession, make_service, text_delta


@pytest.fixture
def serve():
    def _serve(service):
        app.dependency_overrides[get_chat_service] = lambda: service
        return TestClient(app)

    yield _serve
    app.dependency_overrides.clear()


def sse_payloads(body):
    return [block[len("data: "):] for block in body.split("\n\n") if block]


def test_stream_scenario(serve):
    service = make_service([
        b"event: message_start",
        text_delta("Elastic"),
        text_delta("search is"),
        text_delta(" a search engine."),
        b'data: {"type": "message_stop"}',
    ])
    client = serve(service)

    response = client.get("/api/chat", params={"message": "What is Elasticsearch?"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    payloads = sse_payloads(response.text)
    assert payloads[-1] == "[DONE]"
    answer = "".join(json.loads(p)["text"] for p in payloads[:-1])
    assert answer == "Elasticsearch is a search engine."

    prompt = service.llm_client.prompts[0]
    assert FRAGMENT in prompt
    assert "What is Elasticsearch?" in prompt


def test_malformed_chunk_does_not_end_stream(serve):
    service = make_service([
        b'data: {"type": "content_block_delta", "delta": {"type": "text_del',
        text_delta("Hello"),
        text_delta(" world"),
    ])
    response = serve(service).get("/api/chat", params={"message": "hi"})

    payloads = sse_payloads(response.text)
    assert [json.loads(p) for p in payloads[:-1]] == [{"text": "Hello"}, {"text": " world"}]
    assert payloads[-1] == "[DONE]"


@pytest.mark.parametrize("params", [{}, {"message": ""}, {"message": "   "}])
def test_missing_question_is_rejected(serve, params):
    service = make_service([text_delta("never")])
    response = serve(service).get("/api/chat", params=params)

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/json")
    assert "error" in response.json()
    assert service.llm_client.prompts == []


def test_generation_failure_before_output(serve):
    service = make_service([GenerationError("Could not reach the model service")])
    response = serve(service).get("/api/chat", params={"message": "hi"})

    assert response.status_code == 502
    assert response.json() == {"error": "Could not reach the model service"}
    assert "data:" not in response.text


def test_generation_failure_after_output_is_in_band(serve):
    service = make_service([text_delta("partial"), GenerationError("The model stream was interrupted")])
    response = serve(service).get("/api/chat", params={"message": "hi"})

    assert response.status_code == 200
    payloads = sse_payloads(response.text)
    assert json.loads(payloads[0]) == {"text": "partial"}
    assert json.loads(payloads[1]) == {"error": "The model stream was interrupted"}
    assert payloads[2:] == ["[DONE]"]


def test_unreachable_index_still_generates(serve):
    retriever = Retriever(config=Settings(), session=UnreachableSession())
    llm = FakeLLM([text_delta("Answer")])
    service = ChatService(
        retriever=retriever,
        prompt_builder=PromptBuilder(Settings(PROMPT_TEMPLATE="[{context}] {question}")),
        llm_client=llm,
        config=Settings(),
    )

    response = serve(service).get("/api/chat", params={"message": "What is Elasticsearch?"})

    assert llm.prompts == ["[] What is Elasticsearch?"]
    assert sse_payloads(response.text) == ['{"text": "Answer"}', "[DONE]"]


def test_root_and_health(serve):
    client = serve(make_service([]))

    assert client.get("/").status_code == 200
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["search_index_ok"] is True
    assert health["model"] == {"type": "fake", "model": "fake-model"}


class MalformedIndexSession:
    def post(self, url, **kwargs):
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"hits": {"hits": "abc"}})


def test_malformed_index_response_still_generates(serve):
    llm = FakeLLM([text_delta("Answer")])
    service = ChatService(
        retriever=Retriever(config=Settings(), session=MalformedIndexSession()),
        prompt_builder=PromptBuilder(Settings(PROMPT_TEMPLATE="[{context}] {question}")),
        llm_client=llm,
        config=Settings(),
    )

    response = serve(service).get("/api/chat", params={"message": "q"})

    assert response.status_code == 200
    assert llm.prompts == ["[] q"]
    assert sse_payloads(response.text) == ['{"text": "Answer"}', "[DONE]"]
