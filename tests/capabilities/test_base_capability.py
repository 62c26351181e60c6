# tests/capabilities/test_base_capability.py
"""
Tests for BaseCapability and the concrete provider capabilities.

SDK clients are replaced with mocks; no network access is made.
"""

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openai import OpenAIError

from rexcore.capabilities import (
    AnthropicCapability,
    BaseCapability,
    Capability,
    DeepSeekCapability,
    GeminiCapability,
    MockCapability,
    OpenAICapability,
    coerce_config,
)
from rexcore.exceptions import ProviderError
from rexcore.models import ExecuteConfig, ExecuteResult


class DictCapability(BaseCapability):
    """Returns plain dicts, failing a configurable number of times first."""

    capability_id = "dict"
    DEFAULT_MODEL = "dict-model"

    def __init__(self, config=None, failures=0):
        super().__init__(config)
        self.failures = failures
        self.seen = []

    async def _execute(self, prompt, config):
        self.seen.append(config)
        if self.failures > 0:
            self.failures -= 1
            raise ProviderError(self.capability_id, "flaky")
        return {"text": prompt.upper(), "tokens_used": 3, "meta": {"model": self.resolve_model(config.model)}}


# =============================================================================
# TEST: coerce_config
# =============================================================================


class TestCoerceConfig:
    """ExecuteConfig normalization."""

    def test_none(self):
        assert coerce_config(None) == ExecuteConfig()

    def test_passthrough(self):
        cfg = ExecuteConfig(model="m")
        assert coerce_config(cfg) is cfg

    def test_unknown_keys_go_to_extra(self):
        cfg = coerce_config({"model": "m", "max_tokens": 10, "top_p": 0.5})

        assert cfg.model == "m"
        assert cfg.max_tokens == 10
        assert cfg.extra == {"top_p": 0.5}


# =============================================================================
# TEST: BaseCapability
# =============================================================================


class TestBaseCapability:
    """Shared behaviour of all capabilities."""

    @pytest.mark.asyncio
    async def test_dict_result_is_normalized(self):
        capability = DictCapability()

        result = await capability.execute("hello", {"model": "default"})

        assert isinstance(result, ExecuteResult)
        assert result.text == "HELLO"
        assert result.tokens_used == 3
        assert result.latency_ms is not None and result.latency_ms >= 0
        assert result.meta["model"] == "dict-model"

    @pytest.mark.asyncio
    async def test_no_internal_retries_by_default(self):
        capability = DictCapability(failures=1)

        with pytest.raises(ProviderError):
            await capability.execute("hello")
        assert len(capability.seen) == 1

    @pytest.mark.asyncio
    async def test_internal_retries_when_requested(self):
        capability = DictCapability(failures=1)

        with patch("rexcore.capabilities.base.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await capability.execute("hello", {"retries": 1})

        assert result.text == "HELLO"
        assert len(capability.seen) == 2
        sleep.assert_awaited_once()

    def test_missing_id_rejected(self):
        class Nameless(BaseCapability):
            async def _execute(self, prompt, config):
                return {}

        with pytest.raises(TypeError):
            Nameless()

    def test_model_aliases(self):
        capability = DictCapability({"model_aliases": {"Fast": "dict-fast"}})

        assert capability.resolve_model(None) == "dict-model"
        assert capability.resolve_model("dict-default") == "dict-model"
        assert capability.resolve_model("fast") == "dict-fast"
        assert capability.resolve_model("concrete-1") == "concrete-1"

    @patch.dict(os.environ, {"DICT_MODEL_STRONG": "dict-large"}, clear=False)
    def test_env_model_alias(self):
        assert DictCapability().resolve_model("strong") == "dict-large"

    def test_config_defaults(self):
        capability = DictCapability({"timeout_ms": 500, "max_tokens": 64, "default_temperature": 0.1})

        assert capability.default_timeout_ms == 500
        assert capability.default_max_tokens == 64
        assert capability.default_temperature == 0.1

    def test_protocol(self):
        assert isinstance(DictCapability(), Capability)
        assert isinstance(MockCapability(), Capability)


# =============================================================================
# TEST: MockCapability
# =============================================================================


class TestMockCapability:
    """The offline capability used throughout the tests."""

    @pytest.mark.asyncio
    async def test_echo(self):
        result = await MockCapability().execute("four little words here")

        assert result.text == "four little words here"
        assert result.tokens_used == 6
        assert result.meta == {"provider": "mock"}

    @pytest.mark.asyncio
    async def test_fail_times(self):
        capability = MockCapability(capability_id="m", fail_times=1, response="fine")

        with pytest.raises(ProviderError):
            await capability.execute("x")
        assert (await capability.execute("x")).text == "fine"
        assert capability.call_count == 2

    @pytest.mark.asyncio
    async def test_script(self):
        capability = MockCapability(script=["one", {"text": "two", "tokens_used": 9}, RuntimeError("three")])

        assert (await capability.execute("x")).text == "one"
        assert (await capability.execute("x")).tokens_used == 9
        with pytest.raises(RuntimeError):
            await capability.execute("x")
        assert (await capability.execute("echo")).text == "echo"

    @pytest.mark.asyncio
    async def test_partial_flag(self):
        result = await MockCapability(partial=True).execute("x")

        assert result.flagged_partial is True


# =============================================================================
# TEST: Provider capabilities
# =============================================================================


def _chat_response(text="Hello there", model="gpt-4o-mini"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(total_tokens=12, prompt_tokens=5, completion_tokens=7),
        model=model,
    )


class TestOpenAICapability:
    """OpenAI and OpenAI-compatible endpoints."""

    def test_no_client_at_construction(self):
        capability = OpenAICapability({"api_key": "sk-test"})

        assert capability._client is None
        assert capability.default_model == "gpt-4o-mini"

    def test_compatible_defaults(self):
        capability = DeepSeekCapability({"api_key": "sk-test"})

        assert capability.id == "deepseek"
        assert capability.base_url == "https://api.deepseek.com/v1"
        assert capability.default_model == "deepseek-chat"

    @patch.dict(os.environ, {"DEEPSEEK_API_KEY": "sk-from-env"}, clear=False)
    def test_api_key_from_env(self):
        assert DeepSeekCapability().api_key == "sk-from-env"

    @pytest.mark.asyncio
    async def test_execute(self):
        capability = OpenAICapability({"api_key": "sk-test"})
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_chat_response())
        capability._client = client

        result = await capability.execute("Hi", {"model": "gpt-4o", "temperature": 0.2, "max_tokens": 50})

        assert result.text == "Hello there"
        assert result.tokens_used == 12
        assert result.meta["tokens_input"] == 5
        assert result.meta["tokens_output"] == 7
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 50
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_provider_error(self):
        capability = OpenAICapability({"api_key": "sk-test"})
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=OpenAIError("connection reset"))
        capability._client = client

        with pytest.raises(ProviderError) as exc_info:
            await capability.execute("Hi")
        assert exc_info.value.provider_name == "openai"

    @pytest.mark.asyncio
    async def test_close(self):
        capability = OpenAICapability({"api_key": "sk-test"})
        client = MagicMock()
        client.close = AsyncMock()
        capability._client = client

        await capability.close()

        client.close.assert_awaited_once()
        assert capability._client is None


class TestAnthropicCapability:
    """Claude via the Messages API."""

    def test_aliases(self):
        capability = AnthropicCapability({"api_key": "sk-ant"})

        assert capability.id == "claude"
        assert capability.resolve_model("claude-3-opus") == "claude-3-opus-latest"
        assert capability._client is None

    @pytest.mark.asyncio
    async def test_execute_caps_temperature(self):
        capability = AnthropicCapability({"api_key": "sk-ant"})
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Bonjour")],
            usage=SimpleNamespace(input_tokens=4, output_tokens=6),
            model="claude-3-opus-latest",
            stop_reason="end_turn",
        ))
        capability._client = client

        result = await capability.execute("Hi", {"model": "claude-3-opus", "temperature": 1.5})

        assert result.text == "Bonjour"
        assert result.tokens_used == 10
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 1.0
        assert kwargs["model"] == "claude-3-opus-latest"


class TestGeminiCapability:
    """Gemini via google-genai."""

    def test_lazy_client(self):
        capability = GeminiCapability({"api_key": "g-key"})

        assert capability.id == "gemini"
        assert capability._client is None
