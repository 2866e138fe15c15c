"""HTTP backends — OpenAI-compatible chat completions and Anthropic Messages, via httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..catalog import ModelCatalog
from ..errors import ProviderError, classify_failure
from ..models.research import Generation, GenerationParams
from .base import Provider

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "groq": "https://api.groq.com/openai/v1",
}

# Catalog ids that differ from the vendor's API model names.
ANTHROPIC_MODEL_IDS: dict[str, str] = {
    "claude-3.5-haiku": "claude-3-5-haiku-latest",
    "claude-3.7-sonnet": "claude-3-7-sonnet-latest",
    "claude-sonnet-4": "claude-sonnet-4-0",
    "claude-sonnet-4.5": "claude-sonnet-4-5",
    "claude-opus-4.5": "claude-opus-4-5",
}


class _HttpProvider(Provider):
    """Shared httpx plumbing: one AsyncClient per provider, errors mapped to ProviderError."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        headers: dict[str, str],
        catalog: ModelCatalog | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(catalog)
        if not api_key:
            raise ValueError(f"No API key for provider {self.id!r}")
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport)

    async def _post(self, path: str, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            err = ProviderError(self.id, model, f"HTTP {status}: {exc.response.text[:200]}", status=status, cause=exc)
            err.kind = classify_failure(err)
            raise err from exc
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAICompatibleProvider(_HttpProvider):
    """OpenAI ``/chat/completions`` — also serves DeepSeek and Groq."""

    def __init__(
        self,
        provider_id: str,
        api_key: str,
        catalog: ModelCatalog | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.id = provider_id
        self.name = f"{provider_id} (OpenAI-compatible)"
        super().__init__(
            api_key,
            base_url or OPENAI_COMPATIBLE_URLS[provider_id],
            {"Authorization": f"Bearer {api_key}"},
            catalog,
            transport,
        )

    async def generate(self, params: GenerationParams) -> Generation:
        messages = []
        if params.system_prompt:
            messages.append({"role": "system", "content": params.system_prompt})
        messages.append({"role": "user", "content": params.prompt})

        data = await self._post("/chat/completions", params.model, {
            "model": params.model,
            "messages": messages,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
        })
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.id, params.model, "response contained no choices")
        text = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        return self._build(
            params.model,
            text,
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
        )


class AnthropicProvider(_HttpProvider):
    """Anthropic Messages API."""

    id = "anthropic"
    name = "Anthropic Claude"

    def __init__(
        self,
        api_key: str,
        catalog: ModelCatalog | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            api_key,
            "https://api.anthropic.com/v1",
            {"x-api-key": api_key, "anthropic-version": "2023-06-01"},
            catalog,
            transport,
        )

    async def generate(self, params: GenerationParams) -> Generation:
        payload: dict[str, Any] = {
            "model": ANTHROPIC_MODEL_IDS.get(params.model, params.model),
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": [{"role": "user", "content": params.prompt}],
        }
        if params.system_prompt:
            payload["system"] = params.system_prompt

        data = await self._post("/messages", params.model, payload)
        text = "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return self._build(
            params.model,
            text,
            usage.get("input_tokens", 0),
            usage.get("output_tokens", 0),
        )
