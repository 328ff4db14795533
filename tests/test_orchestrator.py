"""
Tests for StartupOrchestrator.

These tests verify:
1. Phases run strictly in order with a barrier between them
2. Services within a phase are gated concurrently
3. A required failure aborts later phases and triggers teardown
4. Optional services only produce warnings
5. The global ceiling bounds the whole run
"""

import asyncio

import pytest

from harness.core.exceptions import PhaseAbortError, RuntimeCommandError
from harness.core.logging import run_id_var
from harness.orchestration.gate import ServiceReadinessGate
from harness.orchestration.models import RunState
from harness.orchestration.orchestrator import StartupOrchestrator
from harness.orchestration.teardown import TeardownCoordinator

from fakes import FakeRuntime, ScriptedProbe, SlowStartRuntime, make_service, no_sleep


async def yield_sleep(delay):
    await asyncio.sleep(0)


def _orchestrator(probe, runtime=None, teardown=None, sleep=no_sleep, **kwargs):
    return StartupOrchestrator(
        ServiceReadinessGate(probe, sleep=sleep),
        runtime=runtime,
        teardown=teardown,
        install_handlers=False,
        **kwargs,
    )


def _phase_of(event: str) -> str:
    return event.split(":")[1].removesuffix("-test")


# =============================================================================
# Happy path
# =============================================================================


class TestAllReady:
    """Every service becomes ready."""

    @pytest.mark.asyncio
    async def test_all_ready(self, stack_phases, fake_runtime):
        probe = ScriptedProbe({})
        run = await _orchestrator(probe, runtime=fake_runtime).run(stack_phases)

        assert run.overall_ready is True
        assert run.state == RunState.ALL_READY
        assert run.failure is None
        assert set(run.outcomes) == {"mongodb", "version-manager", "scraper", "backend", "frontend"}
        assert run.finished_at is not None
        run.raise_for_failure()

    @pytest.mark.asyncio
    async def test_starts_every_service_once(self, stack_phases, fake_runtime):
        run = await _orchestrator(ScriptedProbe({}), runtime=fake_runtime).run(stack_phases)

        assert fake_runtime.started == [
            "mongodb-test",
            "version-manager-test",
            "scraper-test",
            "backend-test",
            "frontend-test",
        ]
        assert run.started_services == fake_runtime.started

    @pytest.mark.asyncio
    async def test_success_does_not_tear_down(self, stack_phases, fake_runtime):
        teardown = TeardownCoordinator(fake_runtime)
        await _orchestrator(ScriptedProbe({}), fake_runtime, teardown).run(stack_phases)

        assert teardown.done is False
        assert fake_runtime.down_calls == 0

    @pytest.mark.asyncio
    async def test_gating_without_runtime(self, stack_phases):
        """An already-running stack is only gated."""
        run = await _orchestrator(ScriptedProbe({})).run(stack_phases)

        assert run.overall_ready is True
        assert run.started_services == []

    @pytest.mark.asyncio
    async def test_run_id_visible_inside_gates(self, stack_phases):
        seen = []
        probe = ScriptedProbe({}, hooks={"backend": lambda attempt: seen.append(run_id_var.get())})

        run = await _orchestrator(probe).run(stack_phases)

        assert seen == [run.run_id]
        assert run_id_var.get() is None

    @pytest.mark.asyncio
    async def test_empty_phase_list(self):
        run = await _orchestrator(ScriptedProbe({})).run([])

        assert run.overall_ready is True
        assert run.state == RunState.ALL_READY


# =============================================================================
# Ordering
# =============================================================================


class TestPhaseOrdering:
    """No phase k+1 activity before every phase k gate returns."""

    @pytest.mark.asyncio
    async def test_barrier_between_phases(self, stack_phases, fake_runtime):
        probe = ScriptedProbe(
            {"mongodb": 3, "version-manager": 2, "scraper": 3, "backend": 2, "frontend": 1},
            events=fake_runtime.events,
        )
        await _orchestrator(probe, runtime=fake_runtime, sleep=yield_sleep).run(stack_phases)

        order = {
            "mongodb": 0,
            "version-manager": 1,
            "scraper": 1,
            "backend": 2,
            "frontend": 3,
        }
        phases_seen = [order[_phase_of(e)] for e in fake_runtime.events]
        assert phases_seen == sorted(phases_seen)

    @pytest.mark.asyncio
    async def test_services_in_phase_gated_concurrently(self, stack_phases):
        probe = ScriptedProbe({"version-manager": 3, "scraper": 3})
        await _orchestrator(probe, sleep=yield_sleep).run(stack_phases)

        phase_two = [e for e in probe.events if "version-manager" in e or "scraper" in e]
        # Both first attempts happen before either second attempt
        assert set(phase_two[:2]) == {"probe:version-manager:1", "probe:scraper:1"}


# =============================================================================
# Failure
# =============================================================================


class TestPhaseFailure:
    """A required service that never becomes ready aborts the run."""

    @pytest.mark.asyncio
    async def test_scraper_failure_aborts_later_phases(self, stack_phases, fake_runtime):
        probe = ScriptedProbe({"scraper": None})
        teardown = TeardownCoordinator(fake_runtime, network="integration-network")

        run = await _orchestrator(probe, fake_runtime, teardown).run(stack_phases)

        assert run.overall_ready is False
        assert run.failure.service == "scraper"
        assert run.failure.phase == 1
        assert "backend" not in probe.calls
        assert "frontend" not in probe.calls
        assert "backend-test" not in fake_runtime.started
        assert "frontend-test" not in fake_runtime.started
        assert run.state == RunState.TORN_DOWN
        assert fake_runtime.down_calls == 1

    @pytest.mark.asyncio
    async def test_sibling_in_failed_phase_still_recorded(self, stack_phases, fake_runtime):
        probe = ScriptedProbe({"scraper": None})
        run = await _orchestrator(probe, fake_runtime).run(stack_phases)

        assert run.outcomes["version-manager"].ready is True
        assert run.outcomes["scraper"].ready is False
        assert run.outcomes["scraper"].attempts_used == 3

    @pytest.mark.asyncio
    async def test_teardown_stops_started_services_in_reverse(self, stack_phases, fake_runtime):
        teardown = TeardownCoordinator(fake_runtime)
        await _orchestrator(ScriptedProbe({"scraper": None}), fake_runtime, teardown).run(stack_phases)

        assert fake_runtime.stopped == ["scraper-test", "version-manager-test", "mongodb-test"]

    @pytest.mark.asyncio
    async def test_failure_captures_logs(self, stack_phases, fake_runtime):
        fake_runtime.log_text["scraper-test"] = "Error: Failed to launch chrome\n"

        run = await _orchestrator(ScriptedProbe({"scraper": None}), fake_runtime).run(stack_phases)

        assert "Failed to launch chrome" in run.failure.logs
        assert "ConnectError" in run.failure.reason

    @pytest.mark.asyncio
    async def test_raise_for_failure(self, stack_phases, fake_runtime):
        run = await _orchestrator(ScriptedProbe({"backend": None}), fake_runtime).run(stack_phases)

        with pytest.raises(PhaseAbortError) as exc_info:
            run.raise_for_failure()
        assert exc_info.value.details["service"] == "backend"
        assert exc_info.value.logs == run.failure.logs

    @pytest.mark.asyncio
    async def test_keep_alive_skips_teardown(self, stack_phases, fake_runtime):
        teardown = TeardownCoordinator(fake_runtime)
        run = await _orchestrator(
            ScriptedProbe({"scraper": None}), fake_runtime, teardown, keep_alive=True
        ).run(stack_phases)

        assert run.state == RunState.PHASE_FAILED
        assert teardown.done is False
        assert fake_runtime.down_calls == 0

    @pytest.mark.asyncio
    async def test_start_failure(self, stack_phases):
        class FailingStart(FakeRuntime):
            def start(self, services):
                super().start(services)
                if "backend-test" in services:
                    raise RuntimeCommandError(["docker", "compose", "up"], 1, "port is already allocated")

        runtime = FailingStart()
        probe = ScriptedProbe({})
        run = await _orchestrator(probe, runtime).run(stack_phases)

        assert run.failure.service == "backend"
        assert "port is already allocated" in run.failure.reason
        assert "backend" not in probe.calls
        # Tracked even though start failed
        assert "backend-test" in run.started_services


class TestOptionalServices:
    """required=False services never abort the run."""

    @pytest.mark.asyncio
    async def test_optional_failure_is_warning(self, fake_runtime):
        phases = [
            [make_service("backend", 1)],
            [make_service("analytics", 2, required=False)],
            [make_service("frontend", 3)],
        ]
        run = await _orchestrator(ScriptedProbe({"analytics": None}), fake_runtime).run(phases)

        assert run.overall_ready is True
        assert len(run.warnings) == 1
        assert "analytics" in run.warnings[0]
        assert "frontend" in run.outcomes


# =============================================================================
# Global ceiling
# =============================================================================


class TestGlobalTimeout:
    """The ceiling fails the run even while gates still have budget."""

    @pytest.mark.asyncio
    async def test_ceiling_exceeded(self, fake_runtime):
        phases = [[make_service("mongodb", 1, max_attempts=1000, interval_ms=20)]]
        teardown = TeardownCoordinator(fake_runtime)

        run = await _orchestrator(
            ScriptedProbe({"mongodb": None}),
            fake_runtime,
            teardown,
            sleep=asyncio.sleep,
            ceiling=0.2,
        ).run(phases)

        assert run.overall_ready is False
        assert run.failure.service == "mongodb"
        assert "exceeded" in run.failure.reason
        assert teardown.done is True

    @pytest.mark.asyncio
    async def test_reason_keeps_fractional_ceiling(self, fake_runtime):
        phases = [[make_service("mongodb", 1, max_attempts=1000, interval_ms=20)]]

        run = await _orchestrator(
            ScriptedProbe({"mongodb": None}), fake_runtime, sleep=asyncio.sleep, ceiling=0.1
        ).run(phases)

        assert "exceeded 0.1s during phase 1" in run.failure.reason

    @pytest.mark.asyncio
    async def test_start_outlasting_ceiling_is_torn_down(self):
        """Teardown waits for a compose up still running in its worker thread."""
        runtime = SlowStartRuntime(delay=0.3)
        teardown = TeardownCoordinator(runtime)

        run = await _orchestrator(
            ScriptedProbe({}), runtime, teardown, ceiling=0.05
        ).run([[make_service("mongodb", 1)]])

        assert "exceeded" in run.failure.reason
        assert teardown.done is True
        assert runtime.running == set()
        assert runtime.events == ["start:mongodb-test", "stop", "remove", "down", "prune"]
