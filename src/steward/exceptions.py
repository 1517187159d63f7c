"""
Steward Custom Exceptions

Structured exception hierarchy for the orchestration core.
All Steward-specific exceptions inherit from StewardError and carry a
stable ``code`` that callers surface instead of a stack trace.

Exception hierarchy:
    StewardError
    +-- ConfigurationError            (missing or malformed process settings)
    +-- CredentialError
    |   +-- CredentialDecryptionError (stored ciphertext unusable, triggers fallback)
    |   +-- InvalidProviderError      (unsupported provider family)
    |   +-- KeyValidationError        (provider rejected the key)
    +-- ProviderError                 (LLM provider failure)
    |   +-- ProviderUnavailableError  (no usable provider at all)
    |   +-- ProviderTimeoutError      (call exceeded its deadline)
    +-- ToolError                     (never propagates past the tool boundary)
        +-- ToolValidationError
        +-- ToolExecutionError
        +-- ToolNotPermittedError
"""

from __future__ import annotations


class StewardError(Exception):
    """Base exception for all Steward errors."""

    code = "internal_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Stable, caller-safe representation (no traceback)."""
        return {"code": self.code, "message": self.message}


class ConfigurationError(StewardError):
    """Raised when process configuration is missing or malformed."""

    code = "configuration_error"


class CredentialError(StewardError):
    """Base exception for tenant credential problems."""

    code = "credential_error"


class CredentialDecryptionError(CredentialError):
    """Raised when a stored credential cannot be decrypted.

    The credential is permanently unusable; the resolver marks it invalid
    and falls back instead of retrying the same ciphertext.
    """

    code = "credential_decryption_failed"


class InvalidProviderError(CredentialError):
    """Raised when a tenant tries to save a key for an unsupported provider."""

    code = "invalid_provider"

    def __init__(self, provider: str):
        super().__init__(
            f"Invalid provider '{provider}'",
            details={"provider": provider},
        )
        self.provider = provider


class KeyValidationError(CredentialError):
    """Raised when a provider rejects a key during validation."""

    code = "key_validation_failed"

    def __init__(self, provider: str, reason: str):
        super().__init__(
            f"API key validation failed for '{provider}': {reason}",
            details={"provider": provider, "reason": reason},
        )
        self.provider = provider
        self.reason = reason


class ProviderError(StewardError):
    """Base exception for LLM provider errors."""

    code = "provider_error"

    def __init__(self, provider_name: str, message: str, details: dict | None = None):
        super().__init__(
            f"Provider '{provider_name}' error: {message}",
            details={"provider_name": provider_name, **(details or {})},
        )
        self.provider_name = provider_name


class ProviderUnavailableError(ProviderError):
    """Raised when no usable provider exists for a request. Not retried."""

    code = "provider_unavailable"


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its deadline. Safe to retry."""

    code = "provider_timeout"


class ToolError(StewardError):
    """Base exception for tool failures.

    Tool errors are converted into structured tool results at the
    registry boundary and never reach the caller.
    """

    code = "tool_error"

    def __init__(self, tool_name: str, message: str, details: dict | None = None):
        super().__init__(
            f"Tool '{tool_name}': {message}",
            details={"tool_name": tool_name, **(details or {})},
        )
        self.tool_name = tool_name


class ToolValidationError(ToolError):
    """Tool input did not match its declared schema."""

    code = "tool_validation_failed"


class ToolExecutionError(ToolError):
    """Tool handler raised while executing."""

    code = "tool_execution_failed"


class ToolNotPermittedError(ToolError):
    """Tool is not registered or not callable by the actor's role."""

    code = "tool_not_permitted"
