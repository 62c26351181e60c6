# src/rexcore/capabilities/__init__.py
"""
Capabilities package for rexcore.

Exports the capability base class, concrete provider capabilities and the
registry that creates and caches them.
"""

from .anthropic_capability import AnthropicCapability
from .base import BaseCapability, Capability, coerce_config, normalize_result
from .gemini_capability import GeminiCapability
from .mock_capability import MockCapability
from .openai_capability import (
    OPENAI_COMPATIBLE_DEFAULTS,
    DeepSeekCapability,
    GrokCapability,
    GroqCapability,
    LlamaCapability,
    MistralCapability,
    OpenAICapability,
    QwenCapability,
)
from .registry import CAPABILITY_MAP, BoundCapability, CapabilityRegistry

__all__ = [
    "AnthropicCapability",
    "BaseCapability",
    "BoundCapability",
    "CAPABILITY_MAP",
    "Capability",
    "CapabilityRegistry",
    "DeepSeekCapability",
    "GeminiCapability",
    "GrokCapability",
    "GroqCapability",
    "LlamaCapability",
    "MistralCapability",
    "MockCapability",
    "OPENAI_COMPATIBLE_DEFAULTS",
    "OpenAICapability",
    "QwenCapability",
    "coerce_config",
    "normalize_result",
]
