from __future__ import annotations

import json

import httpx
import pytest

from tenderwatch.config.settings import Settings
from tenderwatch.errors import TransientNetworkError
from tenderwatch.services.llm_client import (
    AnthropicClient,
    StubLLMClient,
    estimate_cost,
    get_llm_client,
)


def _client(handler) -> AnthropicClient:
    return AnthropicClient(
        api_key="sk-test",
        base_url="https://llm.test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_generate_parses_text_and_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "claude-haiku-4-5-20251001",
                "content": [{"type": "text", "text": '{"score": 70'}, {"type": "text", "text": "}"}],
                "usage": {"input_tokens": 1000, "output_tokens": 100},
            },
        )

    resp = _client(handler).generate("sys", "user", model="claude-haiku-4-5-20251001", max_tokens=150)

    assert resp.text == '{"score": 70}'
    assert (resp.input_tokens, resp.output_tokens) == (1000, 100)
    assert resp.cost_usd == pytest.approx(0.0012)
    assert seen["path"] == "/v1/messages"
    assert seen["key"] == "sk-test"
    assert seen["body"]["system"] == "sys"
    assert seen["body"]["max_tokens"] == 150


@pytest.mark.parametrize("status", [429, 500, 529])
def test_overload_is_transient(status):
    with pytest.raises(TransientNetworkError):
        _client(lambda request: httpx.Response(status)).generate("s", "u", model="m")


def test_client_error_raises_http_status_error():
    with pytest.raises(httpx.HTTPStatusError):
        _client(lambda request: httpx.Response(401, json={"error": "bad key"})).generate("s", "u", model="m")


def test_unknown_model_uses_default_rate():
    assert estimate_cost("some-future-model", 1_000_000, 0) == pytest.approx(3.0)


def test_get_llm_client_by_provider():
    assert get_llm_client(Settings(llm_provider="none")) is None
    assert isinstance(get_llm_client(Settings(llm_provider="stub")), StubLLMClient)
    assert isinstance(get_llm_client(Settings(llm_provider="anthropic", anthropic_api_key="k")), AnthropicClient)

    with pytest.raises(RuntimeError):
        get_llm_client(Settings(llm_provider="anthropic"))
    with pytest.raises(ValueError):
        get_llm_client(Settings(llm_provider="openai"))
