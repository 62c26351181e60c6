# src/rexcore/capabilities/registry.py
"""
Capability Registry for rexcore.

Maps a provider identifier to a factory for its executable capability and
keeps one cached instance per identifier. The set of registered factories
defines which identifiers are "known"; everything downstream (candidate
building, routing, failover) filters on ``is_known_capability`` so a routing
decision never points at something that cannot be executed.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import Candidate, ExecuteConfig, ExecuteResult
from .anthropic_capability import AnthropicCapability
from .base import BaseCapability, Capability, ConfigLike, coerce_config
from .gemini_capability import GeminiCapability
from .mock_capability import MockCapability
from .openai_capability import (
    DeepSeekCapability,
    GrokCapability,
    GroqCapability,
    LlamaCapability,
    MistralCapability,
    OpenAICapability,
    QwenCapability,
)

logger = logging.getLogger(__name__)

CapabilityFactory = Callable[[Dict[str, Any]], Capability]

# --- Mapping from provider id to capability class ---
CAPABILITY_MAP: Dict[str, CapabilityFactory] = {
    "openai": OpenAICapability,
    "claude": AnthropicCapability,
    "deepseek": DeepSeekCapability,
    "groq": GroqCapability,
    "grok": GrokCapability,
    "gemini": GeminiCapability,
    "llama": LlamaCapability,
    "mistral": MistralCapability,
    "qwen": QwenCapability,
    "mock": MockCapability,
}
# --- End Mapping ---


def _normalize(capability_id: str) -> str:
    return (capability_id or "").strip().lower()


class BoundCapability:
    """
    A capability paired with the candidate that selected it.

    The candidate's model alias and temperature are applied to every call
    unless the caller's config sets them explicitly.
    """

    def __init__(self, capability: Capability, candidate: Candidate):
        self.capability = capability
        self.candidate = candidate

    @property
    def id(self) -> str:
        return self.capability.id

    async def execute(self, prompt: str, config: ConfigLike = None) -> ExecuteResult:
        cfg: ExecuteConfig = coerce_config(config)
        update: Dict[str, Any] = {}
        if cfg.model is None:
            update["model"] = self.candidate.model
        if cfg.temperature is None and self.candidate.temperature is not None:
            update["temperature"] = self.candidate.temperature
        return await self.capability.execute(prompt, cfg.model_copy(update=update))

    def __repr__(self) -> str:
        return f"BoundCapability(id={self.id!r}, model={self.candidate.model!r})"


class CapabilityRegistry:
    """
    Creates and caches capability instances by provider id.

    Ids are normalized to lowercase. Construction failures are logged and
    reported as ``None`` so callers can skip the provider.
    """

    def __init__(
        self,
        factories: Optional[Mapping[str, CapabilityFactory]] = None,
        provider_settings: Optional[Mapping[str, Dict[str, Any]]] = None,
    ):
        """
        Args:
            factories: Provider id -> factory. Defaults to CAPABILITY_MAP.
            provider_settings: Provider id -> configuration block passed to
                the factory (api_key, base_url, default_model, ...).
        """
        source = CAPABILITY_MAP if factories is None else factories
        self._factories: Dict[str, CapabilityFactory] = {_normalize(k): v for k, v in source.items()}
        self._settings: Dict[str, Dict[str, Any]] = {
            _normalize(k): dict(v) for k, v in (provider_settings or {}).items()
        }
        self._instances: Dict[str, Capability] = {}

    @classmethod
    def from_config(cls, config: Any, factories: Optional[Mapping[str, CapabilityFactory]] = None) -> "CapabilityRegistry":
        """Build a registry whose factories receive each provider's configured settings."""
        settings: Dict[str, Dict[str, Any]] = {}
        for provider in config.providers:
            block: Dict[str, Any] = {}
            if provider.api_key:
                block["api_key"] = provider.api_key
            if provider.base_url:
                block["base_url"] = provider.base_url
            if provider.meta.default_model:
                block["default_model"] = provider.meta.default_model
            if provider.meta.default_temperature is not None:
                block["default_temperature"] = provider.meta.default_temperature
            block["timeout_ms"] = provider.meta.timeout_ms or config.failover.per_attempt_timeout_ms
            block["max_tokens"] = config.failover.max_tokens
            settings[provider.name] = block
        return cls(factories=factories, provider_settings=settings)

    def is_known_capability(self, capability_id: str) -> bool:
        return _normalize(capability_id) in self._factories

    def list_known_capability_ids(self) -> List[str]:
        return sorted(self._factories)

    def filter_known(self, capability_ids: Iterable[str]) -> List[str]:
        """Known ids in input order, normalized and without duplicates."""
        out: List[str] = []
        for capability_id in capability_ids:
            key = _normalize(capability_id)
            if key in self._factories and key not in out:
                out.append(key)
        return out

    def register(self, capability_id: str, factory: CapabilityFactory, settings: Optional[Dict[str, Any]] = None) -> None:
        """Add or replace a factory; drops any cached instance for that id."""
        key = _normalize(capability_id)
        if not key:
            raise ValueError("Capability id must not be empty")
        self._factories[key] = factory
        if settings is not None:
            self._settings[key] = dict(settings)
        self._instances.pop(key, None)
        logger.debug(f"Registered capability factory '{key}'")

    def register_instance(self, capability: Capability) -> None:
        """Register an already-built capability under its own id."""
        key = _normalize(capability.id)
        self._factories[key] = lambda _settings, _cap=capability: _cap
        self._instances[key] = capability

    def create_capability(self, capability_id: str) -> Optional[Capability]:
        """
        Return the cached capability for ``capability_id``, creating it on first use.

        Returns:
            The capability, or None when the id is unknown or construction failed.
        """
        key = _normalize(capability_id)
        cached = self._instances.get(key)
        if cached is not None:
            return cached

        factory = self._factories.get(key)
        if factory is None:
            logger.warning(f"Unknown capability '{key}'. Known: {self.list_known_capability_ids()}")
            return None

        try:
            instance = factory(dict(self._settings.get(key, {})))
        except Exception as e:
            logger.error(f"Failed to initialize capability '{key}': {e}")
            return None

        self._instances[key] = instance
        logger.info(f"Capability '{key}' initialized.")
        return instance

    def materialize(self, candidates: Sequence[Candidate]) -> List[BoundCapability]:
        """
        Turn ordered candidates into executable capabilities.

        Unknown or unconstructible providers are skipped; only the first
        candidate per provider is kept.
        """
        out: List[BoundCapability] = []
        seen: set = set()
        for candidate in candidates:
            key = _normalize(candidate.provider)
            if key in seen:
                continue
            capability = self.create_capability(key)
            if capability is None:
                continue
            seen.add(key)
            out.append(BoundCapability(capability, candidate))
        return out

    async def close(self) -> None:
        """Closes SDK clients for all instantiated capabilities."""
        tasks = [c.close() for c in self._instances.values() if isinstance(c, BaseCapability)]
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Error during capability closure: {result}")
        self._instances.clear()
