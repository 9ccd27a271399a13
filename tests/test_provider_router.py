"""
Tests for the provider router.

Covers selection order, failover, failure accounting, reload, usage reset
and concurrent bookkeeping.
"""

import asyncio

import pytest

from bge_ai.llm.models import AIRequest, ComplexityHint, ProviderId
from bge_ai.llm.provider_router import ProviderRouter
from bge_ai.utils.errors import (
    AllProvidersExhaustedError,
    InvalidRequestError,
    ProviderError,
)

from tests.conftest import FakeAdapter, provider_failure


def request(message="¿Qué materias hay en primer semestre?", **kwargs) -> AIRequest:
    return AIRequest(message=message, **kwargs)


async def ready_router(make_router, **kwargs) -> ProviderRouter:
    """Router whose remote providers passed a probe."""
    router = make_router(**kwargs)
    await router.reload()
    return router


class TestInitialState:
    """Status before any probe or call"""

    def test_remote_providers_start_unavailable(self, make_router):
        router = make_router()
        health = router.get_health()

        assert health[ProviderId.PRIMARY].status.available is False
        assert health[ProviderId.SECONDARY].status.available is False
        assert health[ProviderId.LOCAL].status.available is True

    def test_unconfigured_provider_reports_reason(self, local):
        router = ProviderRouter([FakeAdapter(ProviderId.PRIMARY, configured=False), local])

        status = router.get_health()[ProviderId.PRIMARY].status
        assert status.available is False
        assert status.last_error == "API key not configured"

    def test_local_adapter_is_required(self, primary):
        with pytest.raises(ValueError):
            ProviderRouter([primary])


class TestValidation:
    """Requests rejected before any provider is touched"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    async def test_empty_message_rejected(self, make_router, primary, message):
        router = await ready_router(make_router)
        before = router.get_health()

        with pytest.raises(InvalidRequestError) as exc_info:
            await router.route(request(message))

        assert exc_info.value.context["field"] == "message"
        assert router.get_health() == before
        assert primary.calls == []

    @pytest.mark.asyncio
    async def test_oversized_message_rejected(self, make_router, primary, secondary):
        router = await ready_router(make_router, max_message_length=50)
        before = router.get_health()

        with pytest.raises(InvalidRequestError):
            await router.route(request("x" * 51))

        assert router.get_health() == before
        assert primary.calls == []
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_message_at_max_length_accepted(self, make_router):
        router = await ready_router(make_router, max_message_length=50)

        response = await router.route(request("x" * 50))

        assert response.provider_used == ProviderId.PRIMARY


class TestSelection:
    """Selection order over available providers"""

    @pytest.mark.asyncio
    async def test_primary_by_default(self, make_router, primary):
        router = await ready_router(make_router)

        response = await router.route(request())

        assert response.provider_used == ProviderId.PRIMARY
        assert response.is_fallback is False
        assert response.text == "respuesta primaria"
        assert response.tokens_used == 42
        assert len(primary.calls) == 1

    @pytest.mark.asyncio
    async def test_high_complexity_prefers_secondary(self, make_router, primary):
        router = await ready_router(make_router)

        response = await router.route(request(complexity_hint=ComplexityHint.HIGH))

        assert response.provider_used == ProviderId.SECONDARY
        assert response.is_fallback is False
        assert primary.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hint", list(ComplexityHint))
    async def test_preferred_secondary_wins_regardless_of_complexity(self, make_router, hint):
        router = await ready_router(make_router)

        response = await router.route(
            request(preferred_provider=ProviderId.SECONDARY, complexity_hint=hint)
        )

        assert response.provider_used == ProviderId.SECONDARY
        assert response.is_fallback is False

    @pytest.mark.asyncio
    async def test_preferred_local(self, make_router, primary):
        router = await ready_router(make_router)

        response = await router.route(request(preferred_provider=ProviderId.LOCAL))

        assert response.provider_used == ProviderId.LOCAL
        assert response.is_fallback is False
        assert primary.calls == []

    @pytest.mark.asyncio
    async def test_unknown_preferred_provider_treated_as_unset(self, make_router):
        router = await ready_router(make_router)

        response = await router.route(
            request(preferred_provider=ProviderId.parse("watson"))
        )

        assert response.provider_used == ProviderId.PRIMARY
        assert response.is_fallback is False

    @pytest.mark.asyncio
    async def test_unavailable_preferred_provider_is_skipped(self, local, primary):
        secondary = FakeAdapter(ProviderId.SECONDARY, configured=False)
        router = ProviderRouter([primary, secondary, local])
        await router.reload()

        response = await router.route(request(preferred_provider=ProviderId.SECONDARY))

        assert response.provider_used == ProviderId.PRIMARY
        assert response.is_fallback is True
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_secondary_when_primary_unavailable(self, make_router, primary):
        primary.probe_error = provider_failure(ProviderId.PRIMARY, "HTTP 401")
        router = await ready_router(make_router)

        response = await router.route(request())

        assert response.provider_used == ProviderId.SECONDARY
        assert response.is_fallback is True
        assert primary.calls == []


class TestFailover:
    """Fall-through to the next candidate after a failure"""

    @pytest.mark.asyncio
    async def test_primary_failure_falls_to_secondary(self, make_router, primary):
        router = await ready_router(make_router)
        primary.fail = provider_failure(ProviderId.PRIMARY)

        response = await router.route(request())

        assert response.provider_used == ProviderId.SECONDARY
        assert response.is_fallback is True

        health = router.get_health()
        assert health[ProviderId.PRIMARY].usage.error_count == 1
        assert health[ProviderId.PRIMARY].usage.request_count == 0
        assert health[ProviderId.SECONDARY].usage.request_count == 1
        assert health[ProviderId.SECONDARY].usage.token_count == 30
        assert health[ProviderId.PRIMARY].status.last_error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_only_local_available(self, make_router):
        router = make_router()

        response = await router.route(
            request("¿Cuáles son los horarios?", complexity_hint=ComplexityHint.MEDIUM)
        )

        assert response.provider_used == ProviderId.LOCAL
        assert response.is_fallback is True
        assert 0.0 <= response.confidence <= 1.0
        assert response.model_name == "local-nlp"
        assert response.tokens_used == 0
        assert response.text

    @pytest.mark.asyncio
    async def test_both_remotes_failing_reach_local(self, make_router, primary, secondary):
        router = await ready_router(make_router)
        primary.fail = provider_failure(ProviderId.PRIMARY)
        secondary.fail = provider_failure(ProviderId.SECONDARY, "HTTP 529")

        response = await router.route(request())

        assert response.provider_used == ProviderId.LOCAL
        assert response.is_fallback is True
        assert len(primary.calls) == 1
        assert len(secondary.calls) == 1

    @pytest.mark.asyncio
    async def test_each_provider_attempted_once(self, make_router, primary, secondary):
        router = await ready_router(make_router)
        primary.fail = provider_failure(ProviderId.PRIMARY)
        secondary.fail = provider_failure(ProviderId.SECONDARY)

        await router.route(request(preferred_provider=ProviderId.PRIMARY))

        assert len(primary.calls) == 1
        assert len(secondary.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, make_router, primary):
        primary.delay = 0.5
        router = await ready_router(make_router, request_timeout=0.05)

        response = await router.route(request())

        assert response.provider_used == ProviderId.SECONDARY
        status = router.get_health()[ProviderId.PRIMARY].status
        assert status.consecutive_failures == 1
        assert "timed out" in status.last_error

    @pytest.mark.asyncio
    async def test_unexpected_exception_counts_as_failure(self, make_router, primary):
        router = await ready_router(make_router)
        primary.fail = KeyError("choices")

        response = await router.route(request())

        assert response.provider_used == ProviderId.SECONDARY
        assert router.get_health()[ProviderId.PRIMARY].usage.error_count == 1

    @pytest.mark.asyncio
    async def test_empty_text_counts_as_failure(self, make_router, primary):
        router = await ready_router(make_router)
        primary.text = "   "

        response = await router.route(request())

        assert response.provider_used == ProviderId.SECONDARY
        assert router.get_health()[ProviderId.PRIMARY].usage.error_count == 1

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, make_router, primary):
        primary.confidence = 1.7
        router = await ready_router(make_router)

        response = await router.route(request())

        assert response.confidence == 1.0


class TestFailureThreshold:
    """Consecutive failure accounting"""

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, make_router, primary):
        router = await ready_router(make_router)
        primary.fail = provider_failure(ProviderId.PRIMARY)
        await router.route(request())
        await router.route(request())
        assert router.get_health()[ProviderId.PRIMARY].status.consecutive_failures == 2

        primary.fail = None
        response = await router.route(request())

        assert response.provider_used == ProviderId.PRIMARY
        status = router.get_health()[ProviderId.PRIMARY].status
        assert status.consecutive_failures == 0
        assert status.last_error is None
        assert status.available is True

    @pytest.mark.asyncio
    async def test_threshold_marks_provider_unavailable(self, make_router, primary):
        router = await ready_router(make_router, failure_threshold=3)
        primary.fail = provider_failure(ProviderId.PRIMARY)

        for _ in range(3):
            await router.route(request())

        status = router.get_health()[ProviderId.PRIMARY].status
        assert status.available is False
        assert status.consecutive_failures == 3

        response = await router.route(request())
        assert response.provider_used == ProviderId.SECONDARY
        assert len(primary.calls) == 3

    @pytest.mark.asyncio
    async def test_below_threshold_stays_available(self, make_router, primary):
        router = await ready_router(make_router, failure_threshold=3)
        primary.fail = provider_failure(ProviderId.PRIMARY)

        await router.route(request())
        await router.route(request())

        assert router.get_health()[ProviderId.PRIMARY].status.available is True

    @pytest.mark.asyncio
    async def test_reload_restores_disabled_provider(self, make_router, primary):
        router = await ready_router(make_router, failure_threshold=1)
        primary.fail = provider_failure(ProviderId.PRIMARY)
        await router.route(request())
        assert router.get_health()[ProviderId.PRIMARY].status.available is False

        primary.fail = None
        await router.reload()

        response = await router.route(request())
        assert response.provider_used == ProviderId.PRIMARY
        assert router.get_health()[ProviderId.PRIMARY].status.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_local_never_disabled(self, make_router):
        failing_local = FakeAdapter(ProviderId.LOCAL, fail=provider_failure(ProviderId.LOCAL))
        router = make_router(adapters=[failing_local], failure_threshold=1)

        for _ in range(3):
            with pytest.raises(AllProvidersExhaustedError):
                await router.route(request())

        assert router.get_health()[ProviderId.LOCAL].status.available is True
        assert len(failing_local.calls) == 3


class TestExhaustion:
    """Terminal failure when even the local fallback fails"""

    @pytest.mark.asyncio
    async def test_all_providers_exhausted(self, primary, secondary):
        primary.fail = provider_failure(ProviderId.PRIMARY)
        secondary.fail = provider_failure(ProviderId.SECONDARY, "HTTP 529")
        broken_local = FakeAdapter(ProviderId.LOCAL, fail=RuntimeError("knowledge base missing"))
        router = ProviderRouter([primary, secondary, broken_local])
        await router.reload()

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await router.route(request())

        error = exc_info.value
        assert [f.provider for f in error.failures] == ["primary", "secondary", "local"]
        attempts = error.context["attempts"]
        assert attempts[1]["reason"] == "HTTP 529"
        assert "knowledge base missing" in attempts[2]["reason"]
        assert error.recoverable is True

    @pytest.mark.asyncio
    async def test_exhaustion_with_only_local(self):
        router = ProviderRouter([FakeAdapter(ProviderId.LOCAL, text="")])

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await router.route(request())

        assert exc_info.value.context["attempts"][0]["error_code"] == "PROVIDER_BAD_RESPONSE"


class TestHealth:
    """Read-only snapshots"""

    @pytest.mark.asyncio
    async def test_get_health_is_pure(self, make_router, primary):
        router = await ready_router(make_router)
        primary.fail = provider_failure(ProviderId.PRIMARY)
        await router.route(request())

        first = router.get_health()
        second = router.get_health()

        assert first == second

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, make_router):
        router = await ready_router(make_router)
        snapshot = router.get_health()

        snapshot[ProviderId.PRIMARY].status.available = False
        snapshot[ProviderId.PRIMARY].usage.request_count = 99

        fresh = router.get_health()
        assert fresh[ProviderId.PRIMARY].status.available is True
        assert fresh[ProviderId.PRIMARY].usage.request_count == 0


class TestReload:
    """Connectivity probes"""

    @pytest.mark.asyncio
    async def test_reload_probes_remote_providers(self, make_router, primary, secondary):
        router = await ready_router(make_router)

        assert primary.probes == 1
        assert secondary.probes == 1
        assert [p.value for p in router.available_providers()] == ["primary", "secondary", "local"]

    @pytest.mark.asyncio
    async def test_failed_probe_marks_unavailable(self, make_router, secondary):
        secondary.probe_error = ProviderError("secondary", "HTTP 401", status_code=401)
        router = await ready_router(make_router)

        status = router.get_health()[ProviderId.SECONDARY].status
        assert status.available is False
        assert status.last_error == "HTTP 401"

    @pytest.mark.asyncio
    async def test_probe_timeout(self, make_router, primary):
        async def slow_probe():
            await asyncio.sleep(1)

        primary.probe = slow_probe
        router = await ready_router(make_router, probe_timeout=0.05)

        status = router.get_health()[ProviderId.PRIMARY].status
        assert status.available is False
        assert "timed out" in status.last_error

    @pytest.mark.asyncio
    async def test_reload_keeps_usage(self, make_router):
        router = await ready_router(make_router)
        await router.route(request())

        await router.reload()

        assert router.get_health()[ProviderId.PRIMARY].usage.request_count == 1

    @pytest.mark.asyncio
    async def test_unconfigured_provider_not_probed(self, local, primary):
        secondary = FakeAdapter(ProviderId.SECONDARY, configured=False)
        router = ProviderRouter([primary, secondary, local])

        await router.reload()

        assert secondary.probes == 0
        assert router.get_health()[ProviderId.SECONDARY].status.available is False

    @pytest.mark.asyncio
    async def test_unconfigured_provider_never_invoked(self, local, secondary):
        primary = FakeAdapter(ProviderId.PRIMARY, configured=False)
        router = ProviderRouter([primary, secondary, local])
        await router.reload()
        await router.reload()

        response = await router.route(request(preferred_provider=ProviderId.PRIMARY))

        assert response.provider_used == ProviderId.SECONDARY
        assert primary.calls == []
        assert router.get_health()[ProviderId.PRIMARY].usage.error_count == 0


class TestUsage:
    """Usage counters and statistics"""

    @pytest.mark.asyncio
    async def test_reset_usage_keeps_availability(self, make_router, primary):
        router = await ready_router(make_router)
        await router.route(request())
        primary.fail = provider_failure(ProviderId.PRIMARY)
        await router.route(request())

        router.reset_usage()

        health = router.get_health()
        for pid in ProviderId:
            assert health[pid].usage.request_count == 0
            assert health[pid].usage.token_count == 0
            assert health[pid].usage.error_count == 0
        assert health[ProviderId.PRIMARY].status.available is True
        assert health[ProviderId.PRIMARY].status.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_stats_detail_depends_on_privilege(self, make_router):
        router = await ready_router(make_router)
        await router.route(request())

        basic = router.get_stats(privileged=False)
        full = router.get_stats(privileged=True)

        assert set(basic) == {"availableProviders", "totalRequests", "uptimeSeconds"}
        assert basic["totalRequests"] == 1
        assert full["totalTokens"] == 42
        assert full["totalErrors"] == 0
        assert full["providers"]["primary"]["usage"]["requestCount"] == 1
        assert full["settings"]["failureThreshold"] == 3

    @pytest.mark.asyncio
    async def test_provider_summary(self, make_router, secondary):
        secondary.probe_error = ProviderError("secondary", "HTTP 401")
        router = await ready_router(make_router)

        summary = router.get_provider_summary()

        assert summary["active"] == ["primary", "local"]
        assert summary["count"] == 2
        assert summary["primary"] == "primary"
        assert summary["fallbacks"] == ["local"]
        assert summary["recommendations"]["forComplexAnalysis"] == "secondary"


class TestConcurrency:
    """Bookkeeping under many in-flight requests"""

    @pytest.mark.asyncio
    async def test_fifty_concurrent_failovers(self, local):
        failing = FakeAdapter(
            ProviderId.PRIMARY,
            fail=provider_failure(ProviderId.PRIMARY),
            delay=0.01,
        )
        router = ProviderRouter([failing, local])
        await router.reload()

        responses = await asyncio.gather(
            *(router.route(request(f"pregunta {i}")) for i in range(50))
        )

        assert all(r.provider_used == ProviderId.LOCAL for r in responses)
        health = router.get_health()
        assert health[ProviderId.PRIMARY].usage.error_count == 50
        assert health[ProviderId.LOCAL].usage.request_count == 50
        assert health[ProviderId.PRIMARY].status.consecutive_failures == 50

    @pytest.mark.asyncio
    async def test_concurrent_successes_all_counted(self, make_router, primary):
        primary.delay = 0.01
        router = await ready_router(make_router)

        await asyncio.gather(*(router.route(request()) for _ in range(20)))

        usage = router.get_health()[ProviderId.PRIMARY].usage
        assert usage.request_count == 20
        assert usage.token_count == 20 * 42


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_aclose_closes_adapters(self, make_router, primary, secondary):
        router = make_router()

        await router.aclose()

        assert primary.closed is True
        assert secondary.closed is True

    def test_from_config_without_keys(self, test_config):
        router = ProviderRouter.from_config(test_config)

        health = router.get_health()
        assert set(health) == {ProviderId.PRIMARY, ProviderId.SECONDARY, ProviderId.LOCAL}
        assert health[ProviderId.PRIMARY].status.last_error == "API key not configured"
        assert router.failure_threshold == test_config.router.failure_threshold
        assert router.max_message_length == 4000
