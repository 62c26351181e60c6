# src/rexcore/capabilities/base.py
"""
Abstract base class for executable capabilities.

A capability wraps one backend (a provider such as OpenAI or Anthropic)
behind a single operation: ``execute(prompt, config)`` returning an
``ExecuteResult`` or raising. Capabilities are stateless between calls;
they only hold read-only defaults (default model, timeout, model aliases),
so one instance may serve concurrent dispatches.

Construction must not perform network I/O. Concrete implementations build
their SDK clients lazily on the first ``execute()``.
"""

import abc
import asyncio
import logging
import os
import time
from typing import Any, Dict, Mapping, Optional, Protocol, Union, runtime_checkable

from ..exceptions import ProviderError
from ..models import ExecuteConfig, ExecuteResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 15_000
DEFAULT_MAX_TOKENS = 512
DEFAULT_TEMPERATURE = 0.7
# Delay before an in-capability retry; doubled on every further retry.
INTERNAL_RETRY_DELAY_S = 0.2

# Aliases resolved through <ID>_MODEL_<ALIAS> environment variables.
ENV_MODEL_ALIASES = ("default", "fast", "strong", "code", "math")

ConfigLike = Union[ExecuteConfig, Mapping[str, Any], None]


@runtime_checkable
class Capability(Protocol):
    """Anything the failover executor can run: a stable id plus ``execute``."""

    id: str

    async def execute(self, prompt: str, config: ConfigLike = None) -> ExecuteResult:
        ...


def coerce_config(config: ConfigLike) -> ExecuteConfig:
    """Accept an ExecuteConfig, a plain mapping, or None."""
    if config is None:
        return ExecuteConfig()
    if isinstance(config, ExecuteConfig):
        return config
    known = set(ExecuteConfig.model_fields)
    data = {k: v for k, v in config.items() if k in known}
    extra = {k: v for k, v in config.items() if k not in known}
    if extra:
        data["extra"] = {**data.get("extra", {}), **extra}
    return ExecuteConfig(**data)


def normalize_result(raw: Any, capability_id: str) -> ExecuteResult:
    """
    Turn what a capability returned into an ExecuteResult.

    Accepts an ExecuteResult or a dict with ``text``, ``tokens_used``
    (``tokensUsed`` also accepted) and ``meta``.

    Raises:
        ProviderError: For None or any other shape.
    """
    if isinstance(raw, ExecuteResult):
        return raw
    if isinstance(raw, Mapping):
        tokens = raw.get("tokens_used", raw.get("tokensUsed"))
        return ExecuteResult(
            text=raw.get("text") or "",
            tokens_used=tokens,
            meta=dict(raw.get("meta") or {}),
        )
    raise ProviderError(capability_id, f"Invalid result type: {type(raw).__name__}")


class BaseCapability(abc.ABC):
    """
    Base class for capability integrations.

    Handles the parts every backend shares:
    - Defaults from the provider configuration block (default model,
      timeout, max tokens, temperature).
    - Model alias resolution ("default", "fast", "strong", ...), from the
      configuration block and from ``<ID>_MODEL_<ALIAS>`` env vars.
    - Latency measurement and optional in-capability retries driven by
      ``config.retries`` (default 0; the failover executor owns retries).

    Subclasses implement ``_execute`` and set ``capability_id``.
    """

    capability_id: str = ""
    DEFAULT_MODEL: str = "default"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the capability with its configuration block.

        Args:
            config: Provider-specific settings, e.g. ``api_key``,
                    ``base_url``, ``default_model``, ``timeout_ms``,
                    ``max_tokens``, ``model_aliases``.
        """
        config = dict(config or {})
        if not self.capability_id:
            raise TypeError(f"{type(self).__name__} must define capability_id")
        self.config = config
        self.default_model: str = config.get("default_model") or self.DEFAULT_MODEL
        self.default_timeout_ms: int = int(config.get("timeout_ms") or DEFAULT_TIMEOUT_MS)
        self.default_max_tokens: int = int(config.get("max_tokens") or DEFAULT_MAX_TOKENS)
        self.default_temperature: float = float(config.get("default_temperature", DEFAULT_TEMPERATURE))
        self.default_retries: int = int(config.get("retries", 0))
        self.model_aliases: Dict[str, str] = self._load_aliases(config.get("model_aliases") or {})

    @property
    def id(self) -> str:
        return self.capability_id

    def _load_aliases(self, configured: Mapping[str, str]) -> Dict[str, str]:
        aliases: Dict[str, str] = {}
        prefix = f"{self.capability_id.upper()}_MODEL_"
        for alias in ENV_MODEL_ALIASES:
            value = os.environ.get(prefix + alias.upper())
            if value:
                aliases[alias] = value
        aliases.update({k.lower(): v for k, v in configured.items() if v})
        return aliases

    def resolve_model(self, model: Optional[str] = None) -> str:
        """Map an alias (or None) to a concrete model identifier."""
        if not model or model.lower() == "default" or model == f"{self.capability_id}-default":
            return self.model_aliases.get("default", self.default_model)
        return self.model_aliases.get(model.lower(), model)

    async def execute(self, prompt: str, config: ConfigLike = None) -> ExecuteResult:
        """
        Run the prompt against this backend.

        Args:
            prompt: Prompt text.
            config: ExecuteConfig or mapping with ``model``, ``max_tokens``,
                    ``temperature``, ``timeout_ms``, ``retries``.

        Returns:
            ExecuteResult with ``latency_ms`` filled in.

        Raises:
            Exception: Whatever the last attempt raised (usually ProviderError).
        """
        cfg = coerce_config(config)
        retries = cfg.retries if cfg.retries is not None else self.default_retries
        start = time.perf_counter()
        last_error: Optional[BaseException] = None

        for attempt in range(retries + 1):
            try:
                raw = await self._execute(prompt, cfg)
                break
            except Exception as e:
                last_error = e
                if attempt < retries:
                    delay = INTERNAL_RETRY_DELAY_S * (2 ** attempt)
                    logger.debug(f"{self.capability_id} attempt {attempt + 1} failed ({type(e).__name__}); retrying in {delay:.2f}s")
                    await asyncio.sleep(delay)
        else:
            assert last_error is not None
            raise last_error

        latency_ms = (time.perf_counter() - start) * 1000.0
        result = normalize_result(raw, self.capability_id)
        return result.model_copy(update={"latency_ms": latency_ms})

    @abc.abstractmethod
    async def _execute(self, prompt: str, config: ExecuteConfig) -> Union[ExecuteResult, Dict[str, Any]]:
        """
        Perform one backend call.

        Returns:
            ExecuteResult or a dict with ``text``, ``tokens_used`` and ``meta``.

        Raises:
            ProviderError: For any provider-specific errors (API, connection, auth).
        """
        pass

    async def close(self) -> None:
        """
        Clean up any resources used by the capability, such as network sessions.
        Capabilities that do not need explicit cleanup use this default.
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.capability_id!r}, default_model={self.default_model!r})"
