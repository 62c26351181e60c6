# src/rexcore/config/__init__.py
"""
Configuration module for the rexcore library.

Configuration is held in Pydantic models (see rex_config.py) and can be
loaded from a TOML file, a dictionary, and environment variables.

Environment variables:
    - REX_PROVIDERS, <NAME>_API_KEY, REX_FEATURE_*, REX_FEATURES
    - Prefix REXCORE__ with double underscores for nested keys:
      REXCORE__FAILOVER__BACKOFF=linear
"""

from .rex_config import (
    AUTO_DETECTED_PROVIDERS,
    DEFAULT_PROVIDER_META,
    BackoffStrategy,
    CostConfig,
    FailoverConfig,
    FeatureFlags,
    ProviderConfig,
    ProviderMeta,
    RateLimitConfig,
    RExConfig,
    RoutingConfig,
    features_from_env,
    load_rex_config,
    providers_from_env,
)

__all__ = [
    "AUTO_DETECTED_PROVIDERS",
    "DEFAULT_PROVIDER_META",
    "BackoffStrategy",
    "CostConfig",
    "FailoverConfig",
    "FeatureFlags",
    "ProviderConfig",
    "ProviderMeta",
    "RateLimitConfig",
    "RExConfig",
    "RoutingConfig",
    "features_from_env",
    "load_rex_config",
    "providers_from_env",
]
