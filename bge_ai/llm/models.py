"""
AI Request Models
=================

Value objects passed through the provider router and the bookkeeping records
it owns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ProviderId(str, Enum):
    """Backends able to answer an AI request."""
    PRIMARY = "primary"      # OpenAI
    SECONDARY = "secondary"  # Anthropic
    LOCAL = "local"          # in-process pattern matcher

    @classmethod
    def parse(cls, value: Any) -> Optional["ProviderId"]:
        """
        Lenient parse for caller input.

        Accepts the ids, their capitalised forms and the vendor names.
        Unknown or empty values return None.
        """
        if isinstance(value, ProviderId):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        return _PROVIDER_ALIASES.get(value.strip().lower())


_PROVIDER_ALIASES = {
    "primary": ProviderId.PRIMARY,
    "openai": ProviderId.PRIMARY,
    "gpt": ProviderId.PRIMARY,
    "secondary": ProviderId.SECONDARY,
    "anthropic": ProviderId.SECONDARY,
    "claude": ProviderId.SECONDARY,
    "local": ProviderId.LOCAL,
}


class ComplexityHint(str, Enum):
    """Caller-supplied signal used only to bias provider selection."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "ComplexityHint":
        if isinstance(value, ComplexityHint):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.MEDIUM


@dataclass(frozen=True)
class UserProfile:
    """Who is asking. ``role`` picks the prompt profile."""
    id: Optional[str] = None
    display_name: str = "Invitado"
    role: str = "student"
    level: int = 1


@dataclass(frozen=True)
class AIRequest:
    """An immutable request routed to exactly one provider at a time."""
    message: str
    context: str = ""
    user_profile: UserProfile = field(default_factory=UserProfile)
    system_prompt_override: Optional[str] = None
    preferred_provider: Optional[ProviderId] = None
    complexity_hint: ComplexityHint = ComplexityHint.MEDIUM


@dataclass(frozen=True)
class ProviderResult:
    """Uniform adapter output."""
    text: str
    tokens_used: int
    model_name: str
    confidence: float


@dataclass(frozen=True)
class AIResponse:
    """The answer handed back to the caller."""
    text: str
    provider_used: ProviderId
    model_name: str
    confidence: float
    tokens_used: int
    is_fallback: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "providerUsed": self.provider_used.value,
            "modelName": self.model_name,
            "confidence": self.confidence,
            "tokensUsed": self.tokens_used,
            "isFallback": self.is_fallback,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProviderStatus:
    """Availability record, mutated only by the router."""
    available: bool = False
    last_error: Optional[str] = None
    consecutive_failures: int = 0

    def snapshot(self) -> "ProviderStatus":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "lastError": self.last_error,
            "consecutiveFailures": self.consecutive_failures,
        }


@dataclass
class UsageCounters:
    """Monotonic per-provider counters, zeroed only by an explicit reset."""
    request_count: int = 0
    token_count: int = 0
    error_count: int = 0

    def snapshot(self) -> "UsageCounters":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestCount": self.request_count,
            "tokenCount": self.token_count,
            "errorCount": self.error_count,
        }


@dataclass(frozen=True)
class ProviderHealth:
    """Point-in-time copy of one provider's status and usage."""
    status: ProviderStatus
    usage: UsageCounters

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.to_dict(),
            "usage": self.usage.to_dict(),
        }
