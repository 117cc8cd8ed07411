from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import httpx

from crosspost.core.errors import GenerationError, GenerationTimeoutError
from crosspost.core.models import LlmProvider

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
MAX_TOKENS = 1000


class LlmProviderAdapter(Protocol):
    provider: LlmProvider
    default_model: str

    def generate(self, api_key: str, model: str, prompt: str) -> str: ...


@contextmanager
def _vendor_call(provider: LlmProvider) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        raise GenerationTimeoutError(f"{provider.value} request timed out", provider=provider.value) from exc
    except httpx.HTTPError as exc:
        raise GenerationError(
            f"{provider.value} request failed: {exc.__class__.__name__}", provider=provider.value
        ) from exc


def _vendor_json(resp: Any, provider: LlmProvider) -> dict[str, Any]:
    if resp.status_code >= 400:
        reason = {
            401: "authentication rejected",
            403: "permission denied",
            429: "rate limited",
        }.get(resp.status_code, "upstream error")
        raise GenerationError(
            f"{provider.value} {reason}: status={resp.status_code}",
            provider=provider.value,
            status_code=resp.status_code,
        )
    try:
        payload = resp.json()
    except ValueError as exc:
        raise GenerationError(f"{provider.value} returned non-JSON response", provider=provider.value) from exc
    if not isinstance(payload, dict):
        raise GenerationError(f"{provider.value} returned invalid JSON payload", provider=provider.value)
    return payload


def _malformed(provider: LlmProvider) -> GenerationError:
    return GenerationError(f"{provider.value} response missing generated text", provider=provider.value)


class OpenAIAdapter:
    provider = LlmProvider.OPENAI
    default_model = "gpt-4o"

    def __init__(self, timeout: float = 8.0) -> None:
        self.timeout = timeout

    def generate(self, api_key: str, model: str, prompt: str) -> str:
        body = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.7,
            "max_tokens": MAX_TOKENS,
        }
        with _vendor_call(self.provider):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(OPENAI_URL, json=body, headers={"Authorization": f"Bearer {api_key}"})
        data = _vendor_json(resp, self.provider)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise _malformed(self.provider) from exc


class AnthropicAdapter:
    provider = LlmProvider.ANTHROPIC
    default_model = "claude-3-5-sonnet-latest"

    def __init__(self, timeout: float = 8.0) -> None:
        self.timeout = timeout

    def generate(self, api_key: str, model: str, prompt: str) -> str:
        body = {
            "model": model,
            "max_tokens": MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
        with _vendor_call(self.provider):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(ANTHROPIC_URL, json=body, headers=headers)
        data = _vendor_json(resp, self.provider)
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise _malformed(self.provider)
        texts = [b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"]
        return "".join(texts)


class GeminiAdapter:
    provider = LlmProvider.GEMINI
    default_model = "gemini-1.5-pro"

    def __init__(self, timeout: float = 8.0) -> None:
        self.timeout = timeout

    def generate(self, api_key: str, model: str, prompt: str) -> str:
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        # The key travels in a header, never in the URL.
        headers = {"x-goog-api-key": api_key}
        with _vendor_call(self.provider):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(GEMINI_URL.format(model=model), json=body, headers=headers)
        data = _vendor_json(resp, self.provider)
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise _malformed(self.provider) from exc
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
