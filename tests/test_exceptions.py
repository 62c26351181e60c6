# tests/test_exceptions.py
"""
Tests for the rexcore.exceptions module.

Tests all exception classes, their inheritance, attributes and message
formatting.
"""

import pytest

from rexcore.exceptions import (
    CapabilityTimeoutError,
    ConfigError,
    FailoverConfigError,
    ProviderError,
    RateLimitExceededError,
    RExCoreError,
)


class TestRExCoreError:
    """Tests for the base RExCoreError exception."""

    def test_default_message(self):
        assert "unspecified error" in str(RExCoreError()).lower()

    def test_custom_message(self):
        assert str(RExCoreError("Custom error message")) == "Custom error message"

    @pytest.mark.parametrize(
        "error_cls",
        [ConfigError, ProviderError, CapabilityTimeoutError, FailoverConfigError, RateLimitExceededError],
    )
    def test_hierarchy(self, error_cls):
        assert issubclass(error_cls, RExCoreError)


class TestProviderError:
    """Provider-level failures."""

    def test_message_includes_provider(self):
        error = ProviderError("groq", "Rate limit exceeded (Status 429)")

        assert error.provider_name == "groq"
        assert str(error) == "Error with provider 'groq': Rate limit exceeded (Status 429)"

    def test_timeout_is_provider_error(self):
        error = CapabilityTimeoutError("openai", 250)

        assert isinstance(error, ProviderError)
        assert error.timeout_ms == 250
        assert "250ms" in str(error)

    def test_timeout_without_duration(self):
        assert "Timed out." in str(CapabilityTimeoutError("openai"))


class TestOtherErrors:
    """Caller misuse and rate limiting."""

    def test_failover_config_default_message(self):
        assert "No providers" in str(FailoverConfigError())

    def test_rate_limit_key(self):
        error = RateLimitExceededError("10.0.0.1")

        assert error.key == "10.0.0.1"
        assert "10.0.0.1" in str(error)

    def test_config_error_default(self):
        assert str(ConfigError()) == "Configuration error."
