"""
BGE AI Error Hierarchy

Provides a structured error framework for consistent error handling across the gateway.
All custom exceptions include error categories, recoverability flags, and error codes.
"""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCategory(str, Enum):
    """Categories of errors for grouping and monitoring"""
    VALIDATION = "validation"
    PROVIDER = "provider"
    CONFIGURATION = "configuration"


class BGEAIError(Exception):
    """
    Base exception for all BGE AI gateway errors.

    Attributes:
        category: Error category for grouping
        recoverable: Whether the error can be recovered from
        error_code: Unique error code for tracking
        context: Additional context about the error
    """
    category: ErrorCategory = ErrorCategory.VALIDATION
    error_code: str = "UNKNOWN"

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/API responses"""
        return {
            "error_code": self.error_code,
            "category": self.category.value,
            "message": str(self),
            "recoverable": self.recoverable,
            "context": self.context
        }


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(BGEAIError):
    """Base class for validation errors"""
    category = ErrorCategory.VALIDATION
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, recoverable=False, **kwargs)
        if field:
            self.context["field"] = field


class InvalidRequestError(ValidationError):
    """AI request rejected before reaching any provider"""
    error_code = "INVALID_REQUEST"


# ============================================================================
# Provider Errors
# ============================================================================

class ProviderError(BGEAIError):
    """A provider attempt failed (non-2xx, transport error, adapter bug)"""
    category = ErrorCategory.PROVIDER
    error_code = "PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        **kwargs
    ):
        super().__init__(f"{provider}: {message}", recoverable=True, **kwargs)
        self.provider = provider
        self.reason = message
        self.context["provider"] = provider
        if status_code:
            self.context["status_code"] = status_code


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within the attempt timeout"""
    error_code = "PROVIDER_TIMEOUT"

    def __init__(self, provider: str, timeout: float, **kwargs):
        super().__init__(provider, f"timed out after {timeout:g}s", **kwargs)
        self.context["timeout"] = timeout


class ProviderResponseError(ProviderError):
    """Provider answered 2xx but the payload could not be interpreted"""
    error_code = "PROVIDER_BAD_RESPONSE"


class ProviderNotConfiguredError(ProviderError):
    """Provider has no credentials configured"""
    error_code = "PROVIDER_NOT_CONFIGURED"

    def __init__(self, provider: str, **kwargs):
        super().__init__(provider, "API key not configured", **kwargs)
        self.recoverable = False


class AllProvidersExhaustedError(BGEAIError):
    """
    Every candidate provider failed for a request, including the local fallback.

    ``failures`` keeps the per-provider errors in attempt order; the same
    information is mirrored into ``context["attempts"]`` for API responses.
    """
    category = ErrorCategory.PROVIDER
    error_code = "ALL_PROVIDERS_EXHAUSTED"

    def __init__(self, failures: List[ProviderError], **kwargs):
        tried = ", ".join(f.provider for f in failures) or "none"
        super().__init__(
            f"All AI providers failed (tried: {tried})",
            recoverable=True,
            **kwargs
        )
        self.failures = list(failures)
        self.context["attempts"] = [
            {
                "provider": f.provider,
                "error_code": f.error_code,
                "reason": f.reason,
            }
            for f in self.failures
        ]


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(BGEAIError):
    """Base class for configuration errors"""
    category = ErrorCategory.CONFIGURATION
    error_code = "CONFIG_ERROR"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, recoverable=False, **kwargs)


class MissingConfigError(ConfigurationError):
    """Required configuration missing"""
    error_code = "CONFIG_MISSING"

    def __init__(self, config_key: str, **kwargs):
        super().__init__(f"Missing required config: {config_key}", **kwargs)
        self.context["config_key"] = config_key


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid"""
    error_code = "CONFIG_INVALID"

    def __init__(self, config_key: str, value: Any, reason: str, **kwargs):
        super().__init__(
            f"Invalid config '{config_key}' = {value}: {reason}",
            **kwargs
        )
        self.context["config_key"] = config_key
        self.context["value"] = str(value)
        self.context["reason"] = reason
