"""
OpenAI Client
=============

Primary provider adapter: OpenAI chat completions over plain HTTP.

Any OpenAI-compatible server works (the base URL is configurable), so the
same adapter also covers self-hosted gateways that mimic the OpenAI API.
"""

from typing import Any, Dict, List, Optional

import httpx

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

OPENAI_CONFIDENCE = 0.95


class OpenAIClient:
    """
    Adapter for the OpenAI chat completions endpoint.

    One ``invoke`` issues exactly one POST; there are no internal retries,
    failover is the router's job.
    """

    provider_id = ProviderId.PRIMARY

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4-turbo-preview",
        probe_model: str = "gpt-3.5-turbo",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenAI API key (None leaves the provider unconfigured)
            base_url: Base URL of the API (e.g., https://api.openai.com/v1)
            model: Model used for answers
            probe_model: Cheap model used for connectivity probes
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.probe_model = probe_model
        self.timeout = timeout
        self._transport = transport

        if not self.api_key:
            logger.warning("llm.openai.no_api_key")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _make_request(
        self,
        endpoint: str,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        POST to the API and translate transport failures into provider errors.

        Args:
            endpoint: API endpoint (e.g., /chat/completions)
            payload: Request payload

        Returns:
            Response JSON
        """
        if not self.configured:
            raise ProviderNotConfiguredError(self.provider_id.value)

        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            raise ProviderTimeoutError(self.provider_id.value, self.timeout)
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.provider_id.value,
                f"HTTP {e.response.status_code} from {endpoint}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.provider_id.value, f"{type(e).__name__}: {e}")
        except ValueError as e:
            raise ProviderResponseError(self.provider_id.value, f"invalid JSON body: {e}")

    def build_messages(self, request: AIRequest) -> List[Dict[str, str]]:
        """Role-tagged message list for one request."""
        return [
            {"role": "system", "content": system_prompt_for(request)},
            {"role": "system", "content": user_context_note(request)},
            {"role": "user", "content": request.message},
        ]

    async def invoke(self, request: AIRequest) -> ProviderResult:
        """
        Answer a request.

        Args:
            request: The routed AI request

        Returns:
            ProviderResult with text, token usage and model name

        Raises:
            ProviderError: On any transport, status or payload failure
        """
        profile = get_profile(request.user_profile.role)
        payload = {
            "model": self.model,
            "messages": self.build_messages(request),
            "max_tokens": profile.max_tokens,
            "temperature": profile.temperature,
            "top_p": 0.9,
            "frequency_penalty": 0.1,
            "presence_penalty": 0.1,
        }

        logger.debug(
            "llm.openai.complete.started",
            extra={"model": self.model, "prompt_length": len(request.message)}
        )

        data = await self._make_request("/chat/completions", payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderResponseError(self.provider_id.value, "response has no choices[0].message.content")
        if not isinstance(content, str) or not content.strip():
            raise ProviderResponseError(self.provider_id.value, "empty completion")

        usage = data.get("usage") or {}
        tokens = int(usage.get("total_tokens") or 0)

        logger.info(
            "llm.openai.complete.success",
            extra={"model": self.model, "response_length": len(content), "tokens_used": tokens}
        )

        return ProviderResult(
            text=content,
            tokens_used=tokens,
            model_name=data.get("model") or self.model,
            confidence=OPENAI_CONFIDENCE,
        )

    async def probe(self) -> None:
        """
        One tiny completion to prove the key and endpoint work.

        Raises:
            ProviderError: If the API is unreachable or rejects the request
        """
        payload = {
            "model": self.probe_model,
            "messages": [{"role": "user", "content": "Test"}],
            "max_tokens": 5,
        }
        data = await self._make_request("/chat/completions", payload)
        if not data.get("choices"):
            raise ProviderResponseError(self.provider_id.value, "probe returned no choices")

    async def close(self) -> None:
        """Nothing to release; a client is opened per request."""
        return None
