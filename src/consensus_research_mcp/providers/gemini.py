"""Gemini backend via the google-genai SDK."""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..catalog import ModelCatalog
from ..errors import ProviderError, classify_failure
from ..models.research import Generation, GenerationParams
from .base import Provider

logger = logging.getLogger(__name__)


class GeminiProvider(Provider):
    """Gemini text generation with usage accounting."""

    id = "gemini"
    name = "Google Gemini"

    def __init__(self, api_key: str, catalog: ModelCatalog | None = None) -> None:
        super().__init__(catalog)
        if not api_key:
            raise ValueError("No Gemini API key — set GEMINI_API_KEY")
        self._client = genai.Client(api_key=api_key)
        logger.info("Created Gemini client (key …%s)", api_key[-4:])

    async def generate(self, params: GenerationParams) -> Generation:
        config = types.GenerateContentConfig(
            max_output_tokens=params.max_tokens,
            temperature=params.temperature,
        )
        if params.system_prompt:
            config.system_instruction = params.system_prompt

        try:
            response = await self._client.aio.models.generate_content(
                model=params.model,
                contents=params.prompt,
                config=config,
            )
        except genai_errors.APIError as exc:
            err = ProviderError(self.id, params.model, str(exc), status=exc.code, cause=exc)
            err.kind = classify_failure(err)
            raise err from exc

        # Only user-visible text counts as the answer; thinking parts are skipped.
        candidate = response.candidates[0] if response.candidates else None
        parts = candidate.content.parts if candidate is not None and candidate.content else []
        text_parts = [p.text for p in parts or [] if p.text and not getattr(p, "thought", False)]
        text = "\n".join(text_parts) if text_parts else (response.text or "")

        usage = response.usage_metadata
        input_tokens = (usage.prompt_token_count or 0) if usage else 0
        output_tokens = (usage.candidates_token_count or 0) if usage else 0
        return self._build(params.model, text, input_tokens, output_tokens)

    async def aclose(self) -> None:
        try:
            await self._client.aio.aclose()
        except Exception:
            logger.debug("Gemini async client close failed", exc_info=True)
        try:
            self._client.close()
        except Exception:
            logger.debug("Gemini client close failed", exc_info=True)
