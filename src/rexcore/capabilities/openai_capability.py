# src/rexcore/capabilities/openai_capability.py
"""
OpenAI API capability implementation for the rexcore library.

Handles interactions with the OpenAI chat completions API, and with the
OpenAI-compatible endpoints exposed by DeepSeek, Groq, xAI (grok), Mistral,
Qwen (DashScope compatible mode) and Llama models hosted on Groq.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI, OpenAIError

from ..exceptions import ConfigError, ProviderError
from ..models import ExecuteConfig, ExecuteResult
from .base import BaseCapability

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

# Settings for providers that speak the OpenAI wire protocol.
OPENAI_COMPATIBLE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "openai": {
        "api_key_env": ("OPENAI_API_KEY",),
        "base_url_env": "OPENAI_API_BASE",
        "base_url": None,
        "default_model": DEFAULT_MODEL,
    },
    "deepseek": {
        "api_key_env": ("DEEPSEEK_API_KEY",),
        "base_url_env": "DEEPSEEK_API_BASE",
        "base_url": "https://api.deepseek.com/v1",
        "default_model": "deepseek-chat",
    },
    "groq": {
        "api_key_env": ("GROQ_API_KEY",),
        "base_url_env": "GROQ_API_BASE",
        "base_url": "https://api.groq.com/openai/v1",
        "default_model": "llama-3.1-70b-versatile",
    },
    "grok": {
        "api_key_env": ("GROK_API_KEY", "XAI_API_KEY"),
        "base_url_env": "GROK_API_BASE",
        "base_url": "https://api.x.ai/v1",
        "default_model": "grok-beta",
    },
    "mistral": {
        "api_key_env": ("MISTRAL_API_KEY",),
        "base_url_env": "MISTRAL_API_BASE",
        "base_url": "https://api.mistral.ai/v1",
        "default_model": "mistral-large-latest",
    },
    "qwen": {
        "api_key_env": ("QWEN_API_KEY", "DASHSCOPE_API_KEY"),
        "base_url_env": "QWEN_API_BASE",
        "base_url": "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
        "default_model": "qwen-max",
    },
    # Llama models served through Groq's endpoint.
    "llama": {
        "api_key_env": ("LLAMA_API_KEY", "GROQ_API_KEY"),
        "base_url_env": "LLAMA_API_BASE",
        "base_url": "https://api.groq.com/openai/v1",
        "default_model": "llama-3.1-8b-instant",
    },
}


class OpenAICapability(BaseCapability):
    """
    Capability for the OpenAI chat completions API.

    Subclasses only change ``capability_id``; endpoint, key and default
    model are looked up in OPENAI_COMPATIBLE_DEFAULTS.
    """

    capability_id = "openai"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initializes the capability. No client is created until first use.

        Args:
            config: Configuration dictionary from ``[providers.<id>]`` containing:
                    'api_key' (optional): API key. Defaults to the provider's env var.
                    'base_url' (optional): Custom endpoint URL.
                    'default_model' (optional): Default model to use.
                    'timeout_ms' (optional): Default per-call timeout.
        """
        defaults = OPENAI_COMPATIBLE_DEFAULTS.get(self.capability_id, {})
        config = dict(config or {})
        config.setdefault("default_model", defaults.get("default_model"))
        super().__init__(config)

        self.api_key = config.get("api_key") or _first_env(defaults.get("api_key_env", ()))
        base_url_env = defaults.get("base_url_env")
        self.base_url = (
            config.get("base_url")
            or (os.environ.get(base_url_env) if base_url_env else None)
            or defaults.get("base_url")
        )
        self._client: Optional[AsyncOpenAI] = None

        if not self.api_key:
            logger.warning(f"{self.capability_id} API key not found in config or environment. "
                           "Ensure it is set for the capability to function.")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(
                    api_key=self.api_key,
                    base_url=self.base_url,
                    timeout=self.default_timeout_ms / 1000.0,
                )
                logger.debug(f"AsyncOpenAI client initialized for '{self.capability_id}'.")
            except OpenAIError as e:
                logger.error(f"Failed to initialize AsyncOpenAI client: {e}")
                raise ConfigError(f"{self.capability_id} client initialization failed: {e}")
        return self._client

    async def _execute(self, prompt: str, config: ExecuteConfig) -> ExecuteResult:
        client = self._get_client()
        model_name = self.resolve_model(config.model)
        timeout_s = (config.timeout_ms or self.default_timeout_ms) / 1000.0
        temperature = config.temperature if config.temperature is not None else self.default_temperature

        logger.debug(f"Sending request to {self.capability_id}: model='{model_name}', temperature={temperature}")
        try:
            response = await client.chat.completions.create(
                model=model_name,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=config.max_tokens or self.default_max_tokens,
                temperature=temperature,
                timeout=timeout_s,
                **config.extra,
            )
        except openai.APIStatusError as e:
            logger.error(f"{self.capability_id} API error: Status {e.status_code} - {e.message}")
            if e.status_code == 401:
                raise ProviderError(self.capability_id, f"Authentication failed (Invalid API Key? Status 401): {e.message}")
            if e.status_code == 429:
                raise ProviderError(self.capability_id, f"Rate limit exceeded (Status 429): {e.message}")
            raise ProviderError(self.capability_id, f"API Error (Status {e.status_code}): {e.message}")
        except openai.APITimeoutError:
            raise ProviderError(self.capability_id, f"Request timed out after {timeout_s}s.")
        except OpenAIError as e:
            raise ProviderError(self.capability_id, f"API Error: {e}")
        except asyncio.TimeoutError:
            raise ProviderError(self.capability_id, f"Request timed out after {timeout_s}s.")

        choice = response.choices[0] if response.choices else None
        text = (choice.message.content or "") if choice and choice.message else ""
        usage = response.usage
        return ExecuteResult(
            text=text,
            tokens_used=usage.total_tokens if usage else None,
            meta={
                "model": response.model or model_name,
                "finish_reason": choice.finish_reason if choice else None,
                "tokens_input": usage.prompt_tokens if usage else None,
                "tokens_output": usage.completion_tokens if usage else None,
            },
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info(f"{self.capability_id} client closed.")


class DeepSeekCapability(OpenAICapability):
    capability_id = "deepseek"


class GroqCapability(OpenAICapability):
    capability_id = "groq"


class GrokCapability(OpenAICapability):
    capability_id = "grok"


class MistralCapability(OpenAICapability):
    capability_id = "mistral"


class QwenCapability(OpenAICapability):
    capability_id = "qwen"


class LlamaCapability(OpenAICapability):
    capability_id = "llama"


def _first_env(names) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None
