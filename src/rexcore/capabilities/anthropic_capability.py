# src/rexcore/capabilities/anthropic_capability.py
"""
Anthropic API capability implementation for the rexcore library.

Handles interactions with the Anthropic Messages API (Claude models).
Registered under the capability id ``claude``.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import anthropic
from anthropic import AnthropicError, AsyncAnthropic

from ..exceptions import ConfigError, ProviderError
from ..models import ExecuteConfig, ExecuteResult
from .base import BaseCapability

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-latest"

# Short names used by routing strategies.
CLAUDE_MODEL_ALIASES = {
    "claude-3-opus": "claude-3-opus-latest",
    "claude-3-sonnet": "claude-3-5-sonnet-latest",
    "claude-3-haiku": "claude-3-5-haiku-latest",
}


class AnthropicCapability(BaseCapability):
    """Capability for the Anthropic Messages API."""

    capability_id = "claude"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initializes the capability. The SDK client is built on first use.

        Args:
            config: Configuration dictionary from ``[providers.claude]`` containing:
                    'api_key' (optional): Defaults to env var CLAUDE_API_KEY, then ANTHROPIC_API_KEY.
                    'base_url' (optional): Custom Anthropic API endpoint URL.
                    'default_model' (optional): Default model to use.
        """
        config = dict(config or {})
        config["model_aliases"] = {**CLAUDE_MODEL_ALIASES, **(config.get("model_aliases") or {})}
        super().__init__(config)

        self.api_key = (
            config.get("api_key")
            or os.environ.get("CLAUDE_API_KEY")
            or os.environ.get("ANTHROPIC_API_KEY")
        )
        self.base_url = config.get("base_url")
        self._client: Optional[AsyncAnthropic] = None

        if not self.api_key:
            logger.warning("Anthropic API key not found in config or environment variables "
                           "CLAUDE_API_KEY / ANTHROPIC_API_KEY. Ensure it is set for the capability to function.")

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            try:
                self._client = AsyncAnthropic(
                    api_key=self.api_key,
                    base_url=self.base_url,
                    timeout=self.default_timeout_ms / 1000.0,
                )
                logger.debug("AsyncAnthropic client initialized.")
            except AnthropicError as e:
                logger.error(f"Failed to initialize Anthropic client: {e}")
                raise ConfigError(f"Anthropic client initialization failed: {e}")
        return self._client

    async def _execute(self, prompt: str, config: ExecuteConfig) -> ExecuteResult:
        client = self._get_client()
        model_name = self.resolve_model(config.model)
        timeout_s = (config.timeout_ms or self.default_timeout_ms) / 1000.0
        temperature = config.temperature if config.temperature is not None else self.default_temperature

        try:
            response = await client.messages.create(
                model=model_name,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=config.max_tokens or self.default_max_tokens,
                temperature=min(temperature, 1.0),
                timeout=timeout_s,
                **config.extra,
            )
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error (Status: {e.status_code}): {e.message}")
            raise ProviderError(self.capability_id, f"API Error (Status: {e.status_code}): {e.message}")
        except AnthropicError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ProviderError(self.capability_id, f"API Error: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Request to Anthropic timed out after {timeout_s} seconds.")
            raise ProviderError(self.capability_id, f"Request timed out after {timeout_s}s.")

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        tokens_used = (usage.input_tokens + usage.output_tokens) if usage else None
        return ExecuteResult(
            text=text,
            tokens_used=tokens_used,
            meta={
                "model": response.model,
                "finish_reason": response.stop_reason,
                "tokens_input": usage.input_tokens if usage else None,
                "tokens_output": usage.output_tokens if usage else None,
            },
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Anthropic client closed.")
