# src/rexcore/config/rex_config.py
"""
rexcore configuration models.

This module defines Pydantic models for every rexcore configuration
section. These models are used for:
1. Type-safe configuration loading
2. Validation with sensible defaults
3. Runtime inspection by the router, executor and engine

The configuration hierarchy:
    RExConfig (root)
    ├── FeatureFlags     - multicore and other boolean feature switches
    ├── ProviderConfig[] - enabled providers, priorities and metadata
    ├── FailoverConfig   - backoff, partial handling and timeouts
    ├── RoutingConfig    - candidate limits, scoring penalty, failsafe providers
    ├── CostConfig       - request and per-user limits
    ├── RateLimitConfig  - per-client token bucket
    └── logging          - dict consumed by rexcore.logging_config

Usage:
    >>> from rexcore.config import RExConfig, load_rex_config
    >>> config = RExConfig()  # All defaults, no providers
    >>> config.failover.backoff_base_ms
    200

    >>> # Load from TOML
    >>> config = load_rex_config(config_path=Path("rexcore.toml"))

    >>> # Load with overrides
    >>> config = load_rex_config(
    ...     config_dict={"features": {"multicore": True}}
    ... )

Environment:
    - REX_PROVIDERS=openai:1,groq:2 and <NAME>_API_KEY auto-detection
      (see providers_from_env)
    - REX_FEATURE_MULTICORE=1 / REX_FEATURES=a,b (see features_from_env)
    - REXCORE__<SECTION>__<KEY>=value for any nested setting
"""

from __future__ import annotations

import logging
import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..exceptions import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class BackoffStrategy(str, Enum):
    """Delay growth between retries of the same capability."""

    EXPONENTIAL = "exponential"  # base * 2^attempt
    LINEAR = "linear"  # base * attempt
    CONSTANT = "constant"  # base


# =============================================================================
# PROVIDERS
# =============================================================================


class ProviderMeta(BaseModel):
    """Static routing metadata for one provider."""

    default_model: Optional[str] = Field(default=None, description="Default model alias")
    default_temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    cost_per_1k: Optional[float] = Field(
        default=None, ge=0.0, description="Estimated cost per 1K usage units"
    )
    latency_ms: Optional[float] = Field(default=None, ge=0.0, description="Estimated latency")
    quality_score: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, description="Quality score used by the secondary selector"
    )
    timeout_ms: Optional[int] = Field(default=None, gt=0, description="Per-attempt timeout")


class ProviderConfig(BaseModel):
    """One configured provider."""

    name: str
    enabled: bool = True
    priority: Optional[int] = Field(default=None, description="Lower is preferred")
    meta: ProviderMeta = Field(default_factory=ProviderMeta)
    api_key: Optional[str] = Field(default=None, repr=False)
    base_url: Optional[str] = Field(default=None)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        name = v.strip().lower()
        if not name:
            raise ValueError("Provider name must not be empty")
        return name


# Built-in metadata heuristics used for routing and scoring when a provider
# section does not supply its own values.
DEFAULT_PROVIDER_META: Dict[str, Dict[str, Any]] = {
    "openai": {
        "default_model": "gpt-4o",
        "default_temperature": 0.6,
        "cost_per_1k": 0.01,
        "latency_ms": 400,
        "quality_score": 0.9,
    },
    "claude": {
        "default_model": "claude-3-5-sonnet-latest",
        "default_temperature": 0.6,
        "cost_per_1k": 0.015,
        "latency_ms": 450,
        "quality_score": 0.9,
    },
    "groq": {
        "default_model": "llama-3.1-70b",
        "default_temperature": 0.4,
        "cost_per_1k": 0.0005,
        "latency_ms": 80,
        "quality_score": 0.7,
    },
    "gemini": {
        "default_model": "gemini-1.5-pro",
        "default_temperature": 0.5,
        "cost_per_1k": 0.002,
        "latency_ms": 300,
        "quality_score": 0.8,
    },
    "mistral": {
        "default_model": "mistral-large",
        "default_temperature": 0.6,
        "cost_per_1k": 0.003,
        "latency_ms": 350,
        "quality_score": 0.75,
    },
    "deepseek": {
        "default_model": "deepseek-coder",
        "default_temperature": 0.2,
        "cost_per_1k": 0.0008,
        "latency_ms": 250,
        "quality_score": 0.75,
    },
    "qwen": {
        "default_model": "qwen-max",
        "default_temperature": 0.4,
        "cost_per_1k": 0.002,
        "latency_ms": 300,
        "quality_score": 0.7,
    },
}

# Providers auto-registered when <NAME>_API_KEY is present.
# llama is a model family served by groq, not a provider of its own.
AUTO_DETECTED_PROVIDERS = ("openai", "claude", "gemini", "groq", "qwen", "mistral", "deepseek")


# =============================================================================
# SECTIONS
# =============================================================================


class FeatureFlags(BaseModel):
    """Boolean feature switches."""

    multicore: bool = Field(default=False, description="Allow parallel fan-out for complex tasks")
    sei: bool = False
    phantom: bool = False
    signal_layer: bool = False
    extra: Dict[str, bool] = Field(default_factory=dict, description="Ad hoc flags")

    def is_enabled(self, name: str) -> bool:
        key = name.strip().lower()
        if key in self.extra:
            return bool(self.extra[key])
        if key == "extra" or key not in type(self).model_fields:
            return False
        return bool(getattr(self, key))


class FailoverConfig(BaseModel):
    """Defaults for the failover executor."""

    backoff: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)
    backoff_base_ms: int = Field(default=200, ge=0)
    max_backoff_ms: int = Field(default=5000, ge=0)
    partial_threshold_chars: int = Field(default=20, ge=0)
    allow_partial: bool = Field(default=False)
    retries: int = Field(default=0, ge=0, le=10, description="Flat retry count per capability")
    per_attempt_timeout_ms: int = Field(default=15000, gt=0)
    max_tokens: int = Field(default=512, gt=0)


class RoutingConfig(BaseModel):
    """Router tuning."""

    max_candidates: int = Field(default=4, ge=1, le=32)
    non_strategic_penalty: float = Field(
        default=5000.0, gt=0.0, description="Score penalty added to generic candidates"
    )
    failsafe_primary: Optional[str] = Field(default="openai")
    failsafe_secondary: Optional[str] = Field(default="groq")
    fast_lane_min_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    default_cost_estimate: float = Field(default=1.0, ge=0.0)
    default_latency_ms: float = Field(default=200.0, ge=0.0)

    def failsafe_providers(self) -> Dict[str, str]:
        """Configured failsafe provider per slot ("primary", "secondary"); empty slots are left out."""
        slots = {"primary": self.failsafe_primary, "secondary": self.failsafe_secondary}
        return {slot: name.strip().lower() for slot, name in slots.items() if name and name.strip()}


class CostConfig(BaseModel):
    """Request and per-user usage limits. ``None`` disables a limit."""

    request_token_limit: Optional[int] = Field(default=None)
    request_cost_limit_usd: Optional[float] = Field(default=None)
    user_token_limit: Optional[int] = Field(default=None)
    user_cost_limit_usd: Optional[float] = Field(default=None)

    @field_validator("*", mode="before")
    @classmethod
    def ignore_negative(cls, v: Any, info) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v < 0:
            logger.warning(f"Invalid negative value for '{info.field_name}', ignoring it")
            return None
        return v


class RateLimitConfig(BaseModel):
    """Per-client token bucket."""

    enabled: bool = True
    max_tokens: int = Field(default=10, ge=1)
    refill_seconds: float = Field(default=60.0, gt=0.0)


class RExConfig(BaseModel):
    """
    Root rexcore configuration.

    Attributes:
        env: Deployment environment label.
        default_timeout_ms: Default per-request timeout hint.
        features: Feature flags.
        providers: Configured providers (any order; see providers_ordered()).
        failover: Failover executor defaults.
        routing: Router tuning.
        cost: Usage limits.
        rate_limit: Per-client rate limiting.
        logging: Logging section passed to configure_logging().
    """

    env: str = Field(default="development")
    default_timeout_ms: int = Field(default=30000, gt=0)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    providers: List[ProviderConfig] = Field(default_factory=list)
    failover: FailoverConfig = Field(default_factory=FailoverConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    cost: CostConfig = Field(default_factory=CostConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("providers", mode="before")
    @classmethod
    def providers_from_mapping(cls, v: Any) -> Any:
        """Accept the TOML form ``[providers.openai]`` as well as a list."""
        if isinstance(v, Mapping):
            return [{"name": name, **(section or {})} for name, section in v.items()]
        return v

    @model_validator(mode="after")
    def apply_default_meta(self) -> "RExConfig":
        for provider in self.providers:
            defaults = DEFAULT_PROVIDER_META.get(provider.name)
            if not defaults:
                continue
            for key, value in defaults.items():
                if getattr(provider.meta, key) is None:
                    setattr(provider.meta, key, value)
        return self

    def providers_ordered(self) -> List[ProviderConfig]:
        """Providers sorted by priority (unset priorities last, stable)."""
        return sorted(
            self.providers,
            key=lambda p: p.priority if p.priority is not None else float("inf"),
        )

    def enabled_providers(self) -> List[ProviderConfig]:
        return [p for p in self.providers_ordered() if p.enabled]

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        key = name.strip().lower()
        for provider in self.providers:
            if provider.name == key:
                return provider
        return None

    def is_feature_enabled(self, name: str) -> bool:
        return self.features.is_enabled(name)


# =============================================================================
# ENVIRONMENT PARSING
# =============================================================================


def _parse_bool(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")


def features_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Read feature flags from the environment.

    REX_FEATURE_MULTICORE, REX_FEATURE_SEI, REX_FEATURE_PHANTOM and
    REX_FEATURE_SIGNAL_LAYER set the named flags; REX_FEATURES is a CSV
    list of extra flags switched on.
    """
    env = os.environ if environ is None else environ
    flags: Dict[str, Any] = {
        "multicore": _parse_bool(env.get("REX_FEATURE_MULTICORE")),
        "sei": _parse_bool(env.get("REX_FEATURE_SEI")),
        "phantom": _parse_bool(env.get("REX_FEATURE_PHANTOM")),
        "signal_layer": _parse_bool(env.get("REX_FEATURE_SIGNAL_LAYER")),
        "extra": {},
    }
    csv = env.get("REX_FEATURES")
    if csv:
        for name in (s.strip().lower() for s in csv.split(",")):
            if not name:
                continue
            if name in FeatureFlags.model_fields and name != "extra":
                flags[name] = True
            else:
                flags["extra"][name] = True
    return flags


def providers_from_env(environ: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
    """
    Build provider sections from the environment.

    Explicit list (optional):
        REX_PROVIDERS=openai:1,groq:2,gemini:3
        REX_PROVIDER_<NAME>_ENABLED=false disables an explicit entry.

    Auto-detection:
        Every provider in AUTO_DETECTED_PROVIDERS whose <NAME>_API_KEY is set
        is added (enabled) unless already listed.

    When any explicit priority exists, providers without one are numbered
    after the highest explicit priority in discovery order.
    """
    env = os.environ if environ is None else environ
    out: List[Dict[str, Any]] = []
    seen: set[str] = set()

    csv = env.get("REX_PROVIDERS")
    if csv:
        for item in (s.strip() for s in csv.split(",")):
            if not item:
                continue
            raw_name, _, raw_priority = item.partition(":")
            name = raw_name.strip().lower()
            if not name or name in seen:
                continue
            priority: Optional[int] = None
            if raw_priority.strip():
                try:
                    priority = int(raw_priority)
                except ValueError:
                    logger.warning(f"Ignoring invalid priority '{raw_priority}' for provider '{name}'")
            enabled_env = env.get(f"REX_PROVIDER_{name.upper()}_ENABLED")
            enabled = _parse_bool(enabled_env) if enabled_env is not None else True
            out.append({"name": name, "enabled": enabled, "priority": priority})
            seen.add(name)

    for name in AUTO_DETECTED_PROVIDERS:
        api_key = env.get(f"{name.upper()}_API_KEY")
        if not api_key:
            continue
        if name in seen:
            for section in out:
                if section["name"] == name:
                    section.setdefault("api_key", api_key)
            continue
        out.append({"name": name, "enabled": True, "priority": None, "api_key": api_key})
        seen.add(name)

    explicit = [s["priority"] for s in out if s["priority"] is not None]
    if explicit:
        next_priority = max(explicit)
        for section in out:
            if section["priority"] is None:
                next_priority += 1
                section["priority"] = next_priority

    return out


# =============================================================================
# LOADING
# =============================================================================


def load_rex_config(
    config_path: Optional[Path] = None,
    config_dict: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    read_provider_env: bool = True,
) -> RExConfig:
    """
    Load rexcore configuration from multiple sources.

    Priority (highest to lowest):
    1. Runtime overrides
    2. REXCORE__<SECTION>__<KEY> environment variables
    3. config_dict
    4. TOML config file (``[rexcore]`` table, or the whole file)
    5. REX_PROVIDERS / <NAME>_API_KEY / REX_FEATURE_* environment variables
    6. Defaults

    Args:
        config_path: Path to TOML config file
        config_dict: Pre-loaded config dictionary
        overrides: Runtime overrides
        environ: Environment mapping (defaults to os.environ)
        read_provider_env: Whether to read provider and feature env vars

    Returns:
        Validated RExConfig instance

    Raises:
        ConfigError: If the file cannot be read or the result does not validate.
    """
    env = os.environ if environ is None else environ
    merged_config: Dict[str, Any] = {}

    if read_provider_env:
        env_providers = providers_from_env(env)
        if env_providers:
            merged_config["providers"] = {p.pop("name"): p for p in env_providers}
        merged_config["features"] = features_from_env(env)

    if config_path is not None:
        path = Path(config_path).expanduser()
        try:
            with path.open("rb") as f:
                full_config = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config file '{path}': {e}")
        file_section = full_config.get("rexcore", full_config)
        merged_config = _deep_merge(merged_config, _providers_as_mapping(file_section))
        logger.debug(f"Loaded rexcore config from {path}")

    if config_dict is not None:
        merged_config = _deep_merge(merged_config, _providers_as_mapping(config_dict))

    merged_config = _apply_env_overrides(merged_config, env)

    if overrides is not None:
        merged_config = _deep_merge(merged_config, _providers_as_mapping(overrides))

    try:
        return RExConfig(**merged_config)
    except ValidationError as e:
        logger.error(f"Invalid rexcore configuration: {e}")
        raise ConfigError(f"Invalid rexcore configuration: {e}")


def _providers_as_mapping(section: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a list-form ``providers`` entry so sections deep-merge by name."""
    providers = section.get("providers")
    if not isinstance(providers, list):
        return section
    result = dict(section)
    result["providers"] = {
        str(p["name"]).strip().lower(): {k: v for k, v in p.items() if k != "name"}
        for p in providers
        if isinstance(p, Mapping) and p.get("name")
    }
    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (values take precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """
    Apply environment variable overrides.

    Environment variables follow the pattern:
        REXCORE__<SECTION>__<KEY>=value

    Examples:
        REXCORE__FEATURES__MULTICORE=true
        REXCORE__FAILOVER__BACKOFF=linear
        REXCORE__PROVIDERS__OPENAI__PRIORITY=1

    Args:
        config: Current config dictionary
        environ: Environment mapping

    Returns:
        Config with environment overrides applied
    """
    prefix = "REXCORE__"

    for key, value in environ.items():
        if not key.startswith(prefix):
            continue

        path_parts = key[len(prefix):].lower().split("__")
        if len(path_parts) < 2:
            continue

        current = config
        for part in path_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[path_parts[-1]] = _convert_env_value(value)

    return config


def _convert_env_value(value: str) -> Any:
    """
    Convert environment variable string to appropriate type.

    Args:
        value: String value from environment

    Returns:
        Converted value (bool, int, float, or string)
    """
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


__all__ = [
    "BackoffStrategy",
    "ProviderMeta",
    "ProviderConfig",
    "FeatureFlags",
    "FailoverConfig",
    "RoutingConfig",
    "CostConfig",
    "RateLimitConfig",
    "RExConfig",
    "DEFAULT_PROVIDER_META",
    "AUTO_DETECTED_PROVIDERS",
    "features_from_env",
    "providers_from_env",
    "load_rex_config",
]
