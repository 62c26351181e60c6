# src/rexcore/exceptions.py
"""
Custom exceptions for the rexcore library.

This module defines a hierarchy of custom exception classes to provide
more specific error information and allow for targeted error handling
by applications using rexcore.

Only caller misuse (an empty capability list handed to the failover
executor) escapes the dispatch core as an exception. Provider-level
failures are raised by capabilities and captured by the executor.
"""

from typing import Optional


class RExCoreError(Exception):
    """Base class for all rexcore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in rexcore."):
        super().__init__(message)

class ConfigError(RExCoreError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ProviderError(RExCoreError):
    """Raised for errors originating from a capability backend (API errors, connection issues)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error."):
        self.provider_name = provider_name
        super().__init__(f"Error with provider '{provider_name}': {message}")

class CapabilityTimeoutError(ProviderError):
    """Raised when a single capability attempt exceeds its timeout."""
    def __init__(self, provider_name: str = "Unknown", timeout_ms: Optional[int] = None):
        self.timeout_ms = timeout_ms
        detail = f"Timed out after {timeout_ms}ms." if timeout_ms is not None else "Timed out."
        super().__init__(provider_name, detail)

class FailoverConfigError(RExCoreError):
    """
    Raised when the failover executor is called without any capability.
    This is a programming/configuration bug, never a runtime condition to retry.
    """
    def __init__(self, message: str = "No providers available for failover execution."):
        super().__init__(message)

class RateLimitExceededError(RExCoreError):
    """Raised when a client exhausts its request bucket and strict acquisition was requested."""
    def __init__(self, key: str = "Unknown", message: str = "Rate limit exceeded."):
        self.key = key
        super().__init__(f"{message} Client: '{key}'")
