"""
LLM Provider Router
===================

Decides which backend answers an AI request, runs the call and falls
through to the next candidate when a provider fails.

Routing Rules (evaluated in order, over providers not yet tried):
- Preferred provider from the request, when it is available
- Secondary (Anthropic) for high-complexity requests
- Primary (OpenAI)
- Secondary (Anthropic)
- Local pattern matcher (always available, never skipped)

Each provider is attempted at most once per request. Status and usage
bookkeeping is applied synchronously after each attempt, so concurrent
requests on one event loop never interleave their updates.
"""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from bge_ai.llm.models import (
    AIRequest,
    AIResponse,
    ComplexityHint,
    ProviderHealth,
    ProviderId,
    ProviderResult,
    ProviderStatus,
    UsageCounters,
)
from bge_ai.utils.errors import (
    AllProvidersExhaustedError,
    InvalidRequestError,
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from bge_ai.utils.logging import PerformanceLogger, get_logger

logger = get_logger(__name__)

REMOTE_PROVIDERS = (ProviderId.PRIMARY, ProviderId.SECONDARY)

RECOMMENDATIONS = {
    "forComplexAnalysis": ProviderId.SECONDARY.value,
    "forGeneralTasks": ProviderId.PRIMARY.value,
    "forOfflineMode": ProviderId.LOCAL.value,
}


class ProviderAdapter(Protocol):
    """Uniform capability every backend exposes to the router."""

    provider_id: ProviderId

    @property
    def configured(self) -> bool: ...

    async def invoke(self, request: AIRequest) -> ProviderResult: ...

    async def probe(self) -> None: ...

    async def close(self) -> None: ...


class ProviderRouter:
    """
    Owns provider status and usage for one process.

    Build one instance at startup and hand it to request handlers.
    """

    def __init__(
        self,
        adapters: Iterable[ProviderAdapter],
        failure_threshold: int = 3,
        request_timeout: float = 30.0,
        probe_timeout: float = 10.0,
        max_message_length: int = 4000,
    ):
        """
        Initialize the router.

        Args:
            adapters: One adapter per provider; a Local adapter is required
            failure_threshold: Consecutive failures before a remote provider is skipped
            request_timeout: Per-attempt timeout in seconds
            probe_timeout: Per-probe timeout in seconds (reload)
            max_message_length: Longest accepted message, in characters
        """
        self._adapters: Dict[ProviderId, ProviderAdapter] = {}
        for adapter in adapters:
            self._adapters[adapter.provider_id] = adapter

        if ProviderId.LOCAL not in self._adapters:
            raise ValueError("ProviderRouter requires a local adapter")

        self.failure_threshold = failure_threshold
        self.request_timeout = request_timeout
        self.probe_timeout = probe_timeout
        self.max_message_length = max_message_length
        self.started_at = time.monotonic()

        # Remote providers stay unavailable until a probe or call succeeds
        self._status: Dict[ProviderId, ProviderStatus] = {}
        self._usage: Dict[ProviderId, UsageCounters] = {}
        for provider_id in ProviderId:
            if provider_id not in self._adapters:
                continue
            status = ProviderStatus(available=provider_id is ProviderId.LOCAL)
            if provider_id is not ProviderId.LOCAL and not self._adapters[provider_id].configured:
                status.last_error = "API key not configured"
            self._status[provider_id] = status
            self._usage[provider_id] = UsageCounters()

    @classmethod
    def from_config(cls, config) -> "ProviderRouter":
        """Build the router and its adapters from a Config."""
        from bge_ai.llm.claude_client import ClaudeClient
        from bge_ai.llm.local_responder import LocalAdapter
        from bge_ai.llm.openai_client import OpenAIClient

        adapters = [
            OpenAIClient(
                api_key=config.openai.api_key,
                base_url=config.openai.api_base,
                model=config.openai.model,
                probe_model=config.openai.probe_model,
                timeout=config.router.request_timeout,
            ),
            ClaudeClient(
                api_key=config.anthropic.api_key,
                default_model=config.anthropic.model,
                probe_model=config.anthropic.probe_model,
                timeout=config.router.request_timeout,
            ),
            LocalAdapter(),
        ]
        return cls(
            adapters,
            failure_threshold=config.router.failure_threshold,
            request_timeout=config.router.request_timeout,
            probe_timeout=config.router.probe_timeout,
            max_message_length=config.router.max_message_length,
        )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def validate(self, request: AIRequest) -> None:
        """
        Raises:
            InvalidRequestError: If the message is empty or too long
        """
        message = request.message if isinstance(request.message, str) else ""
        if not message.strip():
            raise InvalidRequestError("Message must not be empty", field="message")
        if len(message) > self.max_message_length:
            raise InvalidRequestError(
                f"Message exceeds {self.max_message_length} characters",
                field="message",
            )

    def _usable(self, provider_id: Optional[ProviderId], tried: Set[ProviderId]) -> bool:
        return (
            provider_id is not None
            and provider_id not in tried
            and provider_id in self._status
            and self._status[provider_id].available
        )

    def select_provider(self, request: AIRequest, tried: Set[ProviderId]) -> Optional[ProviderId]:
        """
        Next candidate for a request, or None once Local has been tried.

        Args:
            request: The request being routed
            tried: Providers already attempted in this call
        """
        if self._usable(request.preferred_provider, tried):
            return request.preferred_provider
        if request.complexity_hint is ComplexityHint.HIGH and self._usable(ProviderId.SECONDARY, tried):
            return ProviderId.SECONDARY
        for provider_id in REMOTE_PROVIDERS:
            if self._usable(provider_id, tried):
                return provider_id
        if ProviderId.LOCAL in tried:
            return None
        return ProviderId.LOCAL

    @staticmethod
    def natural_choice(request: AIRequest) -> ProviderId:
        """The provider a request would use if every provider were healthy."""
        if request.preferred_provider is not None:
            return request.preferred_provider
        if request.complexity_hint is ComplexityHint.HIGH:
            return ProviderId.SECONDARY
        return ProviderId.PRIMARY

    async def _attempt(self, provider_id: ProviderId, request: AIRequest) -> ProviderResult:
        adapter = self._adapters[provider_id]

        with PerformanceLogger("provider_attempt", {"provider": provider_id.value}, slow_threshold_ms=10000):
            try:
                result = await asyncio.wait_for(adapter.invoke(request), timeout=self.request_timeout)
            except asyncio.TimeoutError:
                raise ProviderTimeoutError(provider_id.value, self.request_timeout)

        if not result.text or not result.text.strip():
            raise ProviderResponseError(provider_id.value, "empty response text")
        return result

    def _record_success(self, provider_id: ProviderId, result: ProviderResult) -> None:
        usage = self._usage[provider_id]
        usage.request_count += 1
        usage.token_count += max(int(result.tokens_used or 0), 0)

        status = self._status[provider_id]
        status.consecutive_failures = 0
        status.available = True
        status.last_error = None

    def _record_failure(self, provider_id: ProviderId, error: ProviderError) -> None:
        self._usage[provider_id].error_count += 1

        status = self._status[provider_id]
        status.consecutive_failures += 1
        status.last_error = error.reason
        if (
            provider_id is not ProviderId.LOCAL
            and status.available
            and status.consecutive_failures >= self.failure_threshold
        ):
            status.available = False
            logger.warning(
                "llm.router.provider.disabled",
                extra={
                    "provider": provider_id.value,
                    "consecutive_failures": status.consecutive_failures,
                }
            )

    async def route(self, request: AIRequest) -> AIResponse:
        """
        Answer a request with the best available provider.

        Args:
            request: The AI request

        Returns:
            AIResponse from the first provider that succeeded

        Raises:
            InvalidRequestError: Empty or oversized message (no provider touched)
            AllProvidersExhaustedError: Even the local fallback failed
        """
        self.validate(request)

        natural = self.natural_choice(request)
        tried: Set[ProviderId] = set()
        failures: List[ProviderError] = []

        while True:
            provider_id = self.select_provider(request, tried)
            if provider_id is None:
                logger.error(
                    "llm.router.exhausted",
                    extra={"attempts": [f.provider for f in failures]}
                )
                raise AllProvidersExhaustedError(failures)

            tried.add(provider_id)
            try:
                result = await self._attempt(provider_id, request)
            except ProviderError as e:
                error = e
            except Exception as e:
                logger.exception(
                    "llm.router.attempt.unexpected",
                    extra={"provider": provider_id.value}
                )
                error = ProviderError(provider_id.value, f"{type(e).__name__}: {e}")
            else:
                self._record_success(provider_id, result)
                is_fallback = provider_id is not natural
                logger.info(
                    "llm.router.attempt.success",
                    extra={
                        "provider": provider_id.value,
                        "model": result.model_name,
                        "tokens_used": result.tokens_used,
                        "is_fallback": is_fallback,
                    }
                )
                return AIResponse(
                    text=result.text,
                    provider_used=provider_id,
                    model_name=result.model_name,
                    confidence=min(max(float(result.confidence), 0.0), 1.0),
                    tokens_used=result.tokens_used,
                    is_fallback=is_fallback,
                )

            self._record_failure(provider_id, error)
            failures.append(error)
            logger.warning(
                "llm.router.attempt.failed",
                extra={
                    "provider": provider_id.value,
                    "error_code": error.error_code,
                    "reason": error.reason,
                }
            )

    # ------------------------------------------------------------------
    # Introspection and administration
    # ------------------------------------------------------------------

    def get_health(self) -> Dict[ProviderId, ProviderHealth]:
        """Copy of every provider's status and usage; never mutates state."""
        return {
            provider_id: ProviderHealth(
                status=self._status[provider_id].snapshot(),
                usage=self._usage[provider_id].snapshot(),
            )
            for provider_id in self._status
        }

    def available_providers(self) -> List[ProviderId]:
        return [pid for pid, status in self._status.items() if status.available]

    async def reload(self) -> None:
        """
        Re-probe every remote provider and reset its availability.

        Usage counters are left untouched.
        """
        for provider_id in REMOTE_PROVIDERS:
            adapter = self._adapters.get(provider_id)
            if adapter is None:
                continue
            status = self._status[provider_id]

            if not adapter.configured:
                status.available = False
                status.last_error = "API key not configured"
                continue

            try:
                await asyncio.wait_for(adapter.probe(), timeout=self.probe_timeout)
            except asyncio.TimeoutError:
                reason = f"probe timed out after {self.probe_timeout:g}s"
            except ProviderError as e:
                reason = e.reason
            except Exception as e:
                logger.exception("llm.router.probe.unexpected", extra={"provider": provider_id.value})
                reason = f"{type(e).__name__}: {e}"
            else:
                status.available = True
                status.consecutive_failures = 0
                status.last_error = None
                logger.info("llm.router.probe.success", extra={"provider": provider_id.value})
                continue

            status.available = False
            status.last_error = reason
            logger.warning(
                "llm.router.probe.failed",
                extra={"provider": provider_id.value, "reason": reason}
            )

        logger.info(
            "llm.router.reloaded",
            extra={"available": [p.value for p in self.available_providers()]}
        )

    def reset_usage(self) -> None:
        """Zero every usage counter; availability is unchanged."""
        for provider_id in self._usage:
            self._usage[provider_id] = UsageCounters()
        logger.info("llm.router.usage_reset")

    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self.started_at, 3)

    def totals(self) -> Dict[str, int]:
        return {
            "requests": sum(u.request_count for u in self._usage.values()),
            "tokens": sum(u.token_count for u in self._usage.values()),
            "errors": sum(u.error_count for u in self._usage.values()),
        }

    def get_stats(self, privileged: bool = False) -> Dict[str, Any]:
        """
        Usage statistics.

        Args:
            privileged: Full per-provider detail when True, basic totals otherwise
        """
        totals = self.totals()
        available = [p.value for p in self.available_providers()]

        if not privileged:
            return {
                "availableProviders": available,
                "totalRequests": totals["requests"],
                "uptimeSeconds": self.uptime_seconds(),
            }

        return {
            "uptimeSeconds": self.uptime_seconds(),
            "availableProviders": available,
            "providers": {
                pid.value: health.to_dict() for pid, health in self.get_health().items()
            },
            "totalRequests": totals["requests"],
            "totalTokens": totals["tokens"],
            "totalErrors": totals["errors"],
            "settings": {
                "failureThreshold": self.failure_threshold,
                "requestTimeout": self.request_timeout,
                "maxMessageLength": self.max_message_length,
            },
        }

    def get_provider_summary(self) -> Dict[str, Any]:
        """Active providers in selection order, with the first one as primary."""
        active = [p.value for p in self.available_providers()]
        return {
            "active": active,
            "count": len(active),
            "primary": active[0] if active else None,
            "fallbacks": active[1:],
            "recommendations": dict(RECOMMENDATIONS),
        }

    async def aclose(self) -> None:
        """Close every adapter."""
        for provider_id, adapter in self._adapters.items():
            try:
                await adapter.close()
            except Exception:
                logger.exception("llm.router.close_failed", extra={"provider": provider_id.value})
