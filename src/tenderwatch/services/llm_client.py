"""LLM client abstractions."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from tenderwatch.config.settings import Settings, get_settings
from tenderwatch.errors import ParseError, TransientNetworkError

ANTHROPIC_VERSION = "2023-06-01"

# USD per 1M tokens (input, output)
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "claude-haiku-4-5-20251001": (0.80, 4.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
}
DEFAULT_COST = (3.00, 15.00)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class LLMResponse:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def cost_usd(self) -> float:
        return estimate_cost(self.model, self.input_tokens, self.output_tokens)


class LLMClient(Protocol):
    """Minimal interface for LLM generation."""

    def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int = 512) -> LLMResponse:
        """Generate a response given system + user prompts."""
        raise NotImplementedError


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    in_rate, out_rate = MODEL_COSTS.get(model, DEFAULT_COST)
    return (input_tokens * in_rate + output_tokens * out_rate) / 1_000_000


def parse_json_reply(text: str) -> dict[str, Any]:
    """Decode a JSON object reply, tolerating ```json fences around it."""
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(f"reply is not JSON: {cleaned[:80]!r}") from e
    if not isinstance(data, dict):
        raise ParseError(f"reply is JSON {type(data).__name__}, expected object")
    return data


@dataclass(frozen=True)
class StubLLMClient:
    """Deterministic stub for tests and offline runs."""

    response_text: str = '{"score": 0, "rationale": "stub"}'
    input_tokens: int = 0
    output_tokens: int = 0

    def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int = 512) -> LLMResponse:
        return LLMResponse(
            text=self.response_text,
            model=model,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


class AnthropicClient:
    """
    Anthropic Messages API over httpx.

    Errors surface as TransientNetworkError (network, 429, 5xx) or
    httpx.HTTPStatusError (other 4xx); callers treat both as soft failures.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        timeout_s: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s)
        self._url = base_url.rstrip("/") + "/v1/messages"
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int = 512) -> LLMResponse:
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        try:
            resp = self._client.post(self._url, headers=self._headers, json=payload)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientNetworkError(f"Anthropic API error {resp.status_code}", status_code=resp.status_code)
        resp.raise_for_status()

        data = resp.json()
        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage") or {}
        return LLMResponse(
            text=text,
            model=data.get("model") or model,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )


def get_llm_client(settings: Settings | None = None) -> LLMClient | None:
    """Factory for LLM clients based on settings; None when no provider is configured."""
    settings = settings or get_settings()
    provider = settings.llm_provider.lower()
    if provider == "none":
        return None
    if provider == "stub":
        return StubLLMClient()
    if provider == "anthropic":
        if not settings.anthropic_api_key:
            raise RuntimeError("TENDERWATCH_ANTHROPIC_API_KEY is required for the anthropic provider.")
        return AnthropicClient(
            api_key=settings.anthropic_api_key,
            base_url=settings.anthropic_base_url,
            timeout_s=settings.llm_timeout_s,
        )
    raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
