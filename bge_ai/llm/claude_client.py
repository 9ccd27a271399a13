"""
Claude Client
=============

Secondary provider adapter: Anthropic Claude through the official SDK.

Claude is preferred for high-complexity requests (deep analysis of
educational content).
"""

from typing import Any, Optional

from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
)

from bge_ai.llm.models import AIRequest, ProviderId, ProviderResult
from bge_ai.llm.prompts import get_profile, system_prompt_for, user_context_note
from bge_ai.utils.errors import (
    ProviderError,
    ProviderNotConfiguredError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from bge_ai.utils.logging import get_logger

logger = get_logger(__name__)

CLAUDE_CONFIDENCE = 0.92


class ClaudeClient:
    """
    Adapter for the Anthropic Messages API.

    The SDK's own retry loop is disabled: each ``invoke`` is a single attempt.
    """

    provider_id = ProviderId.SECONDARY

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "claude-3-sonnet-20240229",
        probe_model: str = "claude-3-haiku-20240307",
        timeout: float = 30.0,
        client: Optional[Any] = None,
    ):
        """
        Initialize the Claude client.

        Args:
            api_key: Anthropic API key (None leaves the provider unconfigured)
            default_model: Model used for answers
            probe_model: Cheap model used for connectivity probes
            timeout: Request timeout in seconds
            client: Pre-built AsyncAnthropic-compatible client (tests)
        """
        self.api_key = api_key
        self.default_model = default_model
        self.probe_model = probe_model
        self.timeout = timeout
        self._client = client

        if not self.api_key and client is None:
            logger.warning("llm.claude.no_api_key")

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self):
        """Get or create the Anthropic client."""
        if not self.configured:
            raise ProviderNotConfiguredError(self.provider_id.value)
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def _create_message(self, **params):
        client = self._get_client()
        try:
            return await client.messages.create(**params)
        except APITimeoutError:
            raise ProviderTimeoutError(self.provider_id.value, self.timeout)
        except APIStatusError as e:
            raise ProviderError(
                self.provider_id.value,
                f"HTTP {e.status_code}: {e.message}",
                status_code=e.status_code,
            )
        except APIConnectionError as e:
            raise ProviderError(self.provider_id.value, f"connection failed: {e}")
        except APIError as e:
            raise ProviderError(self.provider_id.value, str(e))

    async def invoke(self, request: AIRequest) -> ProviderResult:
        """
        Answer a request.

        Args:
            request: The routed AI request

        Returns:
            ProviderResult with text, token usage and model name

        Raises:
            ProviderError: On any API, transport or payload failure
        """
        profile = get_profile(request.user_profile.role)
        system = f"{system_prompt_for(request)}\n\n{user_context_note(request)}"

        logger.debug(
            "llm.claude.complete.started",
            extra={"model": self.default_model, "prompt_length": len(request.message)}
        )

        response = await self._create_message(
            model=self.default_model,
            max_tokens=profile.max_tokens,
            temperature=profile.temperature,
            system=system,
            messages=[{"role": "user", "content": request.message}],
        )

        try:
            content = response.content[0].text
        except (AttributeError, IndexError, TypeError):
            raise ProviderResponseError(self.provider_id.value, "response has no text content block")
        if not isinstance(content, str) or not content.strip():
            raise ProviderResponseError(self.provider_id.value, "empty completion")

        usage = getattr(response, "usage", None)
        tokens = 0
        if usage is not None:
            tokens = (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)

        logger.info(
            "llm.claude.complete.success",
            extra={"model": self.default_model, "response_length": len(content), "tokens_used": tokens}
        )

        return ProviderResult(
            text=content,
            tokens_used=tokens,
            model_name=getattr(response, "model", None) or self.default_model,
            confidence=CLAUDE_CONFIDENCE,
        )

    async def probe(self) -> None:
        """
        One tiny message to prove the key and endpoint work.

        Raises:
            ProviderError: If the API is unreachable or rejects the request
        """
        response = await self._create_message(
            model=self.probe_model,
            max_tokens=5,
            messages=[{"role": "user", "content": "Test"}],
        )
        if not getattr(response, "content", None):
            raise ProviderResponseError(self.provider_id.value, "probe returned no content")

    async def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
