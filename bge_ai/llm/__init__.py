"""
LLM Provider Module
===================

Multi-provider routing for the school's AI assistant, with fallback.

Routing Rules:
- Preferred provider from the request, when available
- High complexity: Anthropic (secondary)
- Default: OpenAI (primary), then Anthropic
- Fallback/Backup: local pattern matcher (no network)
"""

from bge_ai.llm.models import (
    AIRequest,
    AIResponse,
    ComplexityHint,
    ProviderId,
    UserProfile,
)
from bge_ai.llm.provider_router import ProviderRouter
from bge_ai.llm.local_responder import LocalAdapter, LocalResponder

__all__ = [
    "AIRequest",
    "AIResponse",
    "ComplexityHint",
    "ProviderId",
    "UserProfile",
    "ProviderRouter",
    "LocalAdapter",
    "LocalResponder",
]
