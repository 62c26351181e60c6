# tests/conftest.py
"""
Shared fixtures for rexcore tests.

Provides configuration builders, a recording sleep for backoff assertions
and registries backed by MockCapability instances (no network).
"""

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Add source to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rexcore.capabilities import CapabilityRegistry, MockCapability
from rexcore.config import RExConfig


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_config():
    """Build an RExConfig from provider names (priority follows argument order)."""

    def _make(*names: str, disabled: tuple = (), **sections: Any) -> RExConfig:
        providers: Dict[str, Dict[str, Any]] = {}
        for index, name in enumerate(names, start=1):
            providers[name] = {"priority": index, "enabled": name not in disabled}
        return RExConfig(providers=providers, **sections)

    return _make


@pytest.fixture
def mock_registry():
    """Registry whose known ids are served by MockCapability instances."""

    def _make(*ids: str, **overrides: MockCapability) -> CapabilityRegistry:
        registry = CapabilityRegistry(factories={})
        for capability_id in ids:
            capability = overrides.get(capability_id) or MockCapability(
                capability_id=capability_id,
                response=f"{capability_id} answered with a sufficiently long response",
            )
            registry.register_instance(capability)
        return registry

    return _make

