# src/rexcore/capabilities/gemini_capability.py
"""
Google Gemini capability implementation using the google-genai SDK.
"""

import logging
import os
from typing import Any, Dict, Optional

from google import genai
from google.genai import types
from google.genai.errors import APIError

from ..exceptions import ProviderError
from ..models import ExecuteConfig, ExecuteResult
from .base import BaseCapability

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash-latest"


class GeminiCapability(BaseCapability):
    """Capability for Google's Gemini models."""

    capability_id = "gemini"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = dict(config or {})
        super().__init__(config)
        self.api_key = (
            config.get("api_key")
            or os.environ.get("GEMINI_API_KEY")
            or os.environ.get("GOOGLE_API_KEY")
        )
        self._client: Optional[genai.Client] = None
        if not self.api_key:
            logger.warning("Google API key not found. Ensure GEMINI_API_KEY or GOOGLE_API_KEY is set.")

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
            logger.debug("Google Gen AI client initialized.")
        return self._client

    async def _execute(self, prompt: str, config: ExecuteConfig) -> ExecuteResult:
        client = self._get_client()
        model_name = self.resolve_model(config.model)
        temperature = config.temperature if config.temperature is not None else self.default_temperature
        generation_config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=config.max_tokens or self.default_max_tokens,
            http_options=types.HttpOptions(timeout=config.timeout_ms or self.default_timeout_ms),
            **config.extra,
        )

        try:
            response = await client.aio.models.generate_content(
                model=model_name,
                contents=prompt,
                config=generation_config,
            )
        except APIError as e:
            logger.error(f"Google AI API error: {e}")
            raise ProviderError(self.capability_id, f"Google AI API Error: {e}")

        usage = response.usage_metadata
        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason is not None:
            finish_reason = response.candidates[0].finish_reason.name
        return ExecuteResult(
            text=response.text or "",
            tokens_used=usage.total_token_count if usage else None,
            meta={
                "model": model_name,
                "finish_reason": finish_reason,
                "tokens_input": usage.prompt_token_count if usage else None,
                "tokens_output": usage.candidates_token_count if usage else None,
            },
        )
