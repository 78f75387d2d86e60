from __future__ import annotations

import base64
import json
from typing import List

import httpx
import pytest
from openai import AsyncOpenAI
from pydantic_ai.models import test as pai_test
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from form_brand_extraction.agents import (
    AnthropicInvoker,
    DocumentBlock,
    ImageBlock,
    Provider,
    PydanticAIInvoker,
    TextBlock,
    build_invoker,
    build_request,
)
from form_brand_extraction.config import Settings
from form_brand_extraction.errors import ErrorKind

API_URL = "https://models.example.com/v1/messages"


def _request(pages: int = 2):
    return build_request(
        "describe",
        [ImageBlock(f"page-{i}".encode()) for i in range(pages)],
        model="test-model",
        max_tokens=100,
        timeout_seconds=5,
    )


def _invoker(handler, sleeps: List[float]) -> AnthropicInvoker:
    return AnthropicInvoker(
        api_key="secret",
        api_url=API_URL,
        model_name="test-model",
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
    )


def _ok(text: str) -> httpx.Response:
    return httpx.Response(200, json={"content": [{"type": "text", "text": text}]})


def test_wire_shape_and_headers() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _ok("hello")

    response = _invoker(handler, []).invoke(_request(pages=3))

    assert response.success
    assert response.text == "hello"
    assert response.attempts == 1

    sent = seen[0]
    assert sent.headers["x-api-key"] == "secret"
    assert sent.headers["anthropic-version"] == "2023-06-01"
    body = json.loads(sent.content)
    assert body["model"] == "test-model"
    assert body["max_tokens"] == 100
    assert len(body["messages"]) == 1
    content = body["messages"][0]["content"]
    assert [block["type"] for block in content] == ["text", "image", "image", "image"]
    assert content[0]["text"] == "describe"
    assert [base64.b64decode(block["source"]["data"]) for block in content[1:]] == [
        b"page-0",
        b"page-1",
        b"page-2",
    ]
    assert all(block["source"]["media_type"] == "image/png" for block in content[1:])


def test_transport_failure_is_retried_once_after_delay() -> None:
    calls: List[bytes] = []
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.content)
        if len(calls) == 1:
            raise httpx.ConnectError("Connection refused", request=request)
        return _ok("second time lucky")

    request = _request()
    response = _invoker(handler, sleeps).invoke(request)

    assert response.success
    assert response.attempts == 2
    assert sleeps == [2.0]
    assert calls[0] == calls[1]
    assert request.payload() == json.loads(calls[1])


def test_gives_up_after_two_attempts() -> None:
    calls: List[int] = []
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectTimeout("timed out", request=request)

    response = _invoker(handler, sleeps).invoke(_request())

    assert not response.success
    assert response.error_kind is ErrorKind.TRANSIENT_NETWORK
    assert response.attempts == 2
    assert len(calls) == 2
    assert sleeps == [2.0]
    assert sum(sleeps) >= 2.0
    assert not response.connection_reset


def test_connection_reset_is_flagged() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("Connection reset by peer", request=request)

    response = _invoker(handler, []).invoke(_request())

    assert response.error_kind is ErrorKind.TRANSIENT_NETWORK
    assert response.connection_reset


@pytest.mark.parametrize("status", [400, 429, 500, 529])
def test_http_error_response_is_not_retried(status: int) -> None:
    calls: List[int] = []
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(
            status,
            json={"type": "error", "error": {"type": "api_error", "message": "request too large"}},
        )

    response = _invoker(handler, sleeps).invoke(_request())

    assert len(calls) == 1
    assert sleeps == []
    assert not response.success
    assert response.error_kind is ErrorKind.UPSTREAM_REJECTED
    assert response.status_code == status
    assert response.message == "request too large"


def test_success_without_text_block_is_rejected() -> None:
    response = _invoker(lambda request: httpx.Response(200, json={"content": []}), []).invoke(
        _request()
    )

    assert not response.success
    assert response.error_kind is ErrorKind.UPSTREAM_REJECTED


def test_document_block_wire_shape() -> None:
    block = DocumentBlock(b"%PDF-1.4")
    wire = block.to_wire()

    assert wire["type"] == "document"
    assert wire["source"] == {
        "type": "base64",
        "media_type": "application/pdf",
        "data": base64.b64encode(b"%PDF-1.4").decode(),
    }
    assert TextBlock("hi").to_wire() == {"type": "text", "text": "hi"}


def test_request_is_immutable_and_counts_attachments() -> None:
    request = _request(pages=4)

    assert request.attachment_count == 4
    assert isinstance(request.blocks, tuple)
    assert isinstance(request.blocks[0], TextBlock)
    with pytest.raises(AttributeError):
        request.model = "other"  # type: ignore[misc]


def test_pydantic_ai_variant_returns_text() -> None:
    invoker = PydanticAIInvoker(pai_test.TestModel(custom_output_text='{"a": 1}'), sleep=lambda _: None)

    response = invoker.invoke(_request())

    assert response.success
    assert response.text == '{"a": 1}'


def test_pydantic_ai_connection_failure_is_retried() -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = AsyncOpenAI(
        api_key="secret",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    model = OpenAIChatModel("gpt-4o", provider=OpenAIProvider(openai_client=client))
    sleeps: List[float] = []

    response = PydanticAIInvoker(model, sleep=sleeps.append).invoke(_request())

    assert not response.success
    assert response.error_kind is ErrorKind.TRANSIENT_NETWORK
    assert response.attempts == 2
    assert len(calls) == 2
    assert sleeps == [2.0]


def test_provider_parsing() -> None:
    assert Provider.parse("Google") is Provider.GOOGLE
    assert Provider.parse(" claude ") is Provider.CLAUDE
    assert Provider.parse(Provider.OPENAI) is Provider.OPENAI
    with pytest.raises(ValueError, match="Unknown AI provider"):
        Provider.parse("watson")


def test_build_invoker_selects_variant() -> None:
    settings = Settings(anthropic_model="claude-test", google_model="google-gla:gemini-test")

    claude = build_invoker(Provider.CLAUDE, settings)
    google = build_invoker(Provider.GOOGLE, settings)

    assert isinstance(claude, AnthropicInvoker)
    assert claude.model_name == "claude-test"
    assert isinstance(google, PydanticAIInvoker)
    assert google.model_name == "google-gla:gemini-test"
