"""
Input Validation
================

Pydantic models for the AI endpoints. Field names on the wire are camelCase
(``userProfile``, ``preferredProvider``); snake_case is accepted too.

Message length is not checked here: the router owns that rule and reports it
as a 400 with a structured error body.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bge_ai.llm.models import AIRequest, ComplexityHint, ProviderId, UserProfile
from bge_ai.llm.prompts import (
    ANALYSIS_PROMPTS,
    CHAT_SYSTEM_PROMPT,
    analysis_context,
    build_analysis_message,
    build_chat_context,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Shared Models
# =============================================================================

class UserProfileModel(_CamelModel):
    """Caller description sent by the front end."""
    id: Optional[Union[str, int]] = None
    display_name: str = Field("Invitado", alias="displayName", max_length=200)
    role: str = Field("student", max_length=50)
    level: int = Field(1, ge=1, le=12)

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: str) -> str:
        return v.strip().lower() or "student"

    def to_profile(self) -> UserProfile:
        return UserProfile(
            id=None if self.id is None else str(self.id),
            display_name=self.display_name,
            role=self.role,
            level=self.level,
        )


# =============================================================================
# API Request Models
# =============================================================================

class ProcessRequest(_CamelModel):
    """Body of POST /ai/process."""
    message: str = Field("", description="Question or instruction for the assistant")
    context: str = Field("", description="Free-form extra context")
    user_profile: UserProfileModel = Field(default_factory=UserProfileModel, alias="userProfile")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    preferred_provider: Optional[str] = Field(
        None,
        alias="preferredProvider",
        description="primary/secondary/local (or openai/anthropic); unknown values are ignored"
    )
    complexity: Optional[str] = Field("medium", description="low, medium or high")

    def to_ai_request(self) -> AIRequest:
        return AIRequest(
            message=self.message,
            context=self.context,
            user_profile=self.user_profile.to_profile(),
            system_prompt_override=self.system_prompt or None,
            preferred_provider=ProviderId.parse(self.preferred_provider),
            complexity_hint=ComplexityHint.parse(self.complexity),
        )


class ChatTurn(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""


class ChatRequest(_CamelModel):
    """Body of POST /ai/chat."""
    message: str = ""
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    conversation_history: List[ChatTurn] = Field(default_factory=list, alias="conversationHistory")
    provider: Optional[str] = None
    user_profile: UserProfileModel = Field(default_factory=UserProfileModel, alias="userProfile")

    def to_ai_request(self) -> AIRequest:
        return AIRequest(
            message=self.message,
            context=build_chat_context([turn.model_dump() for turn in self.conversation_history]),
            user_profile=self.user_profile.to_profile(),
            system_prompt_override=CHAT_SYSTEM_PROMPT,
            preferred_provider=ProviderId.parse(self.provider),
            complexity_hint=ComplexityHint.MEDIUM,
        )


class AnalyzeRequest(_CamelModel):
    """Body of POST /ai/analyze."""
    content: str = ""
    analysis_type: str = Field("general", alias="analysisType")
    subject: Optional[str] = None
    grade: Optional[Union[str, int]] = None
    user_profile: UserProfileModel = Field(
        default_factory=lambda: UserProfileModel(role="teacher"),
        alias="userProfile",
    )

    @field_validator("analysis_type")
    @classmethod
    def known_analysis_type(cls, v: str) -> str:
        """Unknown analysis types fall back to a general analysis."""
        v = v.strip().lower()
        return v if v in ANALYSIS_PROMPTS else "general"

    def to_ai_request(self) -> AIRequest:
        # Empty content stays empty so the router rejects it
        message = build_analysis_message(self.analysis_type, self.content) if self.content.strip() else ""
        return AIRequest(
            message=message,
            context=analysis_context(self.subject, self.grade),
            user_profile=self.user_profile.to_profile(),
            preferred_provider=ProviderId.SECONDARY,
            complexity_hint=ComplexityHint.HIGH,
        )
