"""Tests for backend selection, fallback and health checks."""

from unittest.mock import AsyncMock

import pytest

from taskflow.execution.cancellation import CancellationToken
from taskflow.models.gateway import ChatRequest
from taskflow.models.metrics import MetricsStore
from taskflow.models.orchestrator import MultiModelOrchestrator
from taskflow.models.registry import BackendRegistry, BackendSpec
from taskflow.utils.error_handler import ModelUnavailable, RunCancelled

SIMPLE = ChatRequest.from_prompt("hello")
MEDIUM = ChatRequest.from_prompt("implement a function")


class TestConstruction:
    def test_unknown_primary_rejected(self, fake_gateway):
        registry = BackendRegistry([(BackendSpec("a", "m"), fake_gateway("a"))])
        with pytest.raises(ValueError, match="not registered"):
            MultiModelOrchestrator(registry, MetricsStore(), primary="missing")

    def test_unknown_strategy_rejected(self, fake_gateway, make_orchestrator):
        with pytest.raises(ValueError, match="Unknown selection strategy"):
            make_orchestrator(fake_gateway("a"), strategy="random")


class TestFallback:
    @pytest.mark.asyncio
    async def test_primary_answers(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", ["from a"]), fake_gateway("b"))
        response = await orchestrator.chat(SIMPLE)
        assert response.content == "from a"
        assert response.backend == "a"

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self, fake_gateway, make_orchestrator):
        primary = fake_gateway("a", error=RuntimeError("down"))
        backup = fake_gateway("b", ["from b"])
        orchestrator = make_orchestrator(primary, backup)

        response = await orchestrator.chat(SIMPLE)

        assert response.backend == "b"
        assert orchestrator.metrics.get("a").error_count == 1
        assert orchestrator.metrics.get("a").success_rate == pytest.approx(0.95)
        assert orchestrator.metrics.get("b").last_used is not None

    @pytest.mark.asyncio
    async def test_all_backends_fail(self, fake_gateway, make_orchestrator):
        """Should try the primary plus each fallback once, then raise."""
        gateways = [fake_gateway(name, error=RuntimeError(f"{name} down")) for name in ("a", "b", "c")]
        orchestrator = make_orchestrator(*gateways)

        with pytest.raises(ModelUnavailable) as exc_info:
            await orchestrator.chat(SIMPLE)

        error = exc_info.value
        assert error.attempts == ["a", "b", "c"]
        assert str(error) == "All models failed. Last error: c down"
        assert all(len(g.calls) == 1 for g in gateways)
        for name in ("a", "b", "c"):
            assert orchestrator.metrics.get(name).error_count == 1

    @pytest.mark.asyncio
    async def test_unregistered_fallback_skipped(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", error=RuntimeError("x")), fallbacks=["ghost", "a"])
        with pytest.raises(ModelUnavailable) as exc_info:
            await orchestrator.chat(SIMPLE)
        assert exc_info.value.attempts == ["a"]

    @pytest.mark.asyncio
    async def test_single_model_mode_uses_primary_only(self, fake_gateway, make_orchestrator):
        primary = fake_gateway("a", error=RuntimeError("down"))
        backup = fake_gateway("b")
        orchestrator = make_orchestrator(primary, backup, multi_model_enabled=False)
        with pytest.raises(ModelUnavailable):
            await orchestrator.chat(SIMPLE)
        assert backup.calls == []

    @pytest.mark.asyncio
    async def test_request_timeout_counts_as_failure(self, fake_gateway, make_orchestrator):
        slow = fake_gateway("a", delay=2)
        fast = fake_gateway("b", ["quick"])
        orchestrator = make_orchestrator(slow, fast, request_timeout_s=0.05)
        response = await orchestrator.chat(SIMPLE)
        assert response.backend == "b"
        assert orchestrator.metrics.get("a").error_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_call(self, fake_gateway, make_orchestrator):
        gateway = fake_gateway("a")
        orchestrator = make_orchestrator(gateway)
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(RunCancelled):
            await orchestrator.chat(SIMPLE, token)
        assert gateway.calls == []


class TestSelection:
    def test_performance_prefers_best_score(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"), fake_gateway("b"))
        orchestrator.metrics.record("a", success=False, latency_ms=5000)
        selected, complexity = orchestrator.select_backend(MEDIUM)
        assert selected == "b"
        assert complexity == "medium"

    def test_cost_strategy_picks_cheapest_for_simple(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(
            fake_gateway("a"),
            fake_gateway("b"),
            costs={"a": 0.01, "b": 0.0001},
            strategy="cost",
        )
        assert orchestrator.select_backend(SIMPLE)[0] == "b"
        assert orchestrator.select_backend(MEDIUM)[0] == "a"

    def test_load_balanced_round_robin(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"), fake_gateway("b"), strategy="load_balanced")
        picks = [orchestrator.select_backend(SIMPLE)[0] for _ in range(4)]
        assert picks == ["a", "b", "a", "b"]

    def test_performance_ties_keep_primary(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"), fake_gateway("b"), primary="b", fallbacks=["a"])
        assert orchestrator.select_backend(MEDIUM)[0] == "b"

    def test_unavailable_backends_excluded(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"), fake_gateway("b"), strategy="load_balanced")
        orchestrator.metrics.set_available("a", False)
        picks = {orchestrator.select_backend(SIMPLE)[0] for _ in range(4)}
        assert picks == {"b"}

    def test_attempt_order(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"), fake_gateway("b"), fake_gateway("c"))
        assert orchestrator.attempt_order("b") == ["b", "c"]
        assert orchestrator.attempt_order("a") == ["a", "b", "c"]


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_chunks(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", chunks=["he", "llo"]))
        chunks = []
        backend = await orchestrator.chat_stream(SIMPLE, chunks.append)
        assert backend == "a"
        assert "".join(chunks) == "hello"

    @pytest.mark.asyncio
    async def test_falls_back_before_first_chunk(self, fake_gateway, make_orchestrator):
        broken = fake_gateway("a", fail_after_chunks=0)
        backup = fake_gateway("b", chunks=["ok"])
        orchestrator = make_orchestrator(broken, backup)
        chunks = []
        assert await orchestrator.chat_stream(SIMPLE, chunks.append) == "b"
        assert chunks == ["ok"]

    @pytest.mark.asyncio
    async def test_no_fallback_after_partial_output(self, fake_gateway, make_orchestrator):
        """Should not splice a second backend's output onto a partial stream."""
        broken = fake_gateway("a", chunks=["par", "tial"], fail_after_chunks=1)
        backup = fake_gateway("b", chunks=["other"])
        orchestrator = make_orchestrator(broken, backup)
        chunks = []
        with pytest.raises(ModelUnavailable) as exc_info:
            await orchestrator.chat_stream(SIMPLE, chunks.append)
        assert chunks == ["par"]
        assert exc_info.value.attempts == ["a"]
        assert backup.calls == []


class TestHealth:
    @pytest.mark.asyncio
    async def test_check_health_marks_availability(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", healthy=False), fake_gateway("b"))
        health = await orchestrator.check_health()
        assert health == {"a": False, "b": True}
        assert not orchestrator.metrics.get("a").available

    @pytest.mark.asyncio
    async def test_raising_health_check_marks_backend_unavailable(self, fake_gateway, make_orchestrator):
        """Should mark the raising backend unavailable and still check the rest."""
        broken = fake_gateway("a")
        broken.validate_credentials = AsyncMock(side_effect=ConnectionError("connection refused"))
        orchestrator = make_orchestrator(broken, fake_gateway("b"))

        health = await orchestrator.check_health()

        assert health == {"a": False, "b": True}
        assert not orchestrator.metrics.get("a").available
        assert orchestrator.metrics.get("b").available

    @pytest.mark.asyncio
    async def test_performance_report_and_reset(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a"))
        await orchestrator.chat(SIMPLE)
        report = orchestrator.performance_report()
        assert report["a"]["success_rate"] == 1.0
        assert report["a"]["last_used"] is not None

        orchestrator.reset_metrics()
        assert orchestrator.performance_report()["a"]["last_used"] is None


class TestLateRegistration:
    @pytest.mark.asyncio
    async def test_backend_registered_after_construction_is_selectable(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", ["from a"]), strategy="cost")
        orchestrator.registry.register(
            BackendSpec("b", "b-model", cost_per_token=0.0001),
            fake_gateway("b", ["from b"]),
        )

        response = await orchestrator.chat(SIMPLE)

        assert response.backend == "b"
        assert orchestrator.metrics.get("b").cost_per_token == pytest.approx(0.0001)
        assert "b" in orchestrator.performance_report()

    @pytest.mark.asyncio
    async def test_late_backend_ties_with_primary(self, fake_gateway, make_orchestrator):
        orchestrator = make_orchestrator(fake_gateway("a", ["from a"]))
        orchestrator.registry.register(BackendSpec("b", "b-model"), fake_gateway("b", ["from b"]))

        response = await orchestrator.chat(MEDIUM)

        assert response.backend == "a"
