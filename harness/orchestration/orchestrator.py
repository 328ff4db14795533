"""
Startup orchestrator - phased bring-up with health gating.

Phases run strictly in order. Within a phase every service is started
together and its readiness gates run concurrently; the next phase starts
only after every gate in the current one has returned.

    NOT_STARTED -> PHASE_IN_PROGRESS(0) -> ... -> PHASE_IN_PROGRESS(n-1) -> ALL_READY
                         |                              |
                         +------> PHASE_FAILED(i) <-----+
    PHASE_FAILED / ALL_READY -> TORN_DOWN
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from harness.core.exceptions import (
    OrchestrationTimeoutError,
    ReadinessTimeoutError,
    RuntimeCommandError,
)
from harness.core.logging import get_logger, run_id_var
from harness.orchestration.gate import ServiceReadinessGate
from harness.orchestration.models import (
    OrchestrationRun,
    PhaseFailure,
    ReadinessOutcome,
    RunState,
    ServiceDescriptor,
)
from harness.orchestration.teardown import TeardownCoordinator

if TYPE_CHECKING:
    from harness.runtime.compose import ContainerRuntime

logger = get_logger("orchestrator")


class StartupOrchestrator:
    """
    Bring up dependency-ordered service groups.

    Args:
        gate: Readiness gate used for every service
        runtime: Starts containers and serves logs; None when the stack is
            already running and only needs gating
        teardown: Released on phase failure; registered before phase 0
        ceiling: Global timeout in seconds for the whole run
        log_tail_lines: Log lines captured from a failing container
        keep_alive: Skip teardown on failure (debug mode)
        install_handlers: Install signal/atexit hooks on the teardown
    """

    def __init__(
        self,
        gate: ServiceReadinessGate,
        runtime: "ContainerRuntime | None" = None,
        teardown: TeardownCoordinator | None = None,
        ceiling: float | None = 600.0,
        log_tail_lines: int = 100,
        keep_alive: bool = False,
        install_handlers: bool = True,
    ):
        self.gate = gate
        self.runtime = runtime
        self.teardown = teardown
        self.ceiling = ceiling
        self.log_tail_lines = log_tail_lines
        self.keep_alive = keep_alive
        self.install_handlers = install_handlers

    async def run(self, phases: Sequence[Sequence[ServiceDescriptor]]) -> OrchestrationRun:
        """Run every phase in order and return the finalized run."""
        run = OrchestrationRun(phases=[list(phase) for phase in phases])
        token = run_id_var.set(run.run_id)

        if self.teardown is not None:
            self.teardown.attach(run)
            if self.install_handlers:
                self.teardown.register()

        try:
            try:
                await asyncio.wait_for(self._run_phases(run), timeout=self.ceiling)
            except asyncio.TimeoutError:
                await self._fail_on_timeout(run)
            finally:
                run.finished_at = datetime.now(timezone.utc)

            if run.failure is not None:
                logger.error(
                    f"Phase {run.failure.phase + 1} failed: {run.failure.service} - {run.failure.reason}"
                )
                if self.teardown is not None and not self.keep_alive:
                    await asyncio.to_thread(self.teardown.teardown, run)
        finally:
            run_id_var.reset(token)

        return run

    async def _run_phases(self, run: OrchestrationRun) -> None:
        total = len(run.phases)

        for index, phase in enumerate(run.phases):
            run.state = RunState.PHASE_IN_PROGRESS
            run.current_phase = index
            names = [d.runtime_name for d in phase]
            logger.info(f"Phase {index + 1}/{total}: {', '.join(d.name for d in phase)}")

            if self.runtime is not None:
                # Track before starting so a partial start is still torn down
                run.mark_started(names)
                if self.teardown is not None:
                    self.teardown.begin_start()
                try:
                    await asyncio.to_thread(self._start, names)
                except RuntimeCommandError as e:
                    await self._fail(run, index, phase[0], f"start failed: {e.message}")
                    return

            outcomes = await asyncio.gather(*(self._gate(run, d) for d in phase))

            blocking: list[tuple[ServiceDescriptor, ReadinessTimeoutError]] = []
            for outcome in outcomes:
                if outcome.ready:
                    continue
                error = ReadinessTimeoutError(
                    outcome.service.name, outcome.attempts_used, outcome.last_error
                )
                if outcome.service.required:
                    blocking.append((outcome.service, error))
                else:
                    warning = f"{error.message}; continuing"
                    logger.warning(warning)
                    run.warnings.append(warning)

            if blocking:
                descriptor, error = blocking[0]
                await self._fail(run, index, descriptor, error.message)
                return

            logger.info(f"Phase {index + 1}/{total} ready")

        run.overall_ready = True
        run.state = RunState.ALL_READY
        logger.info("All services are ready")

    def _start(self, names: list[str]) -> None:
        # Runs in a worker thread; cancelling the awaiting task does not stop it
        try:
            self.runtime.start(names)
        finally:
            if self.teardown is not None:
                self.teardown.end_start()

    async def _gate(self, run: OrchestrationRun, descriptor: ServiceDescriptor) -> ReadinessOutcome:
        outcome = await self.gate.await_ready(descriptor)
        run.record(outcome)
        return outcome

    async def _fail(
        self,
        run: OrchestrationRun,
        phase: int,
        descriptor: ServiceDescriptor,
        reason: str,
    ) -> None:
        run.overall_ready = False
        run.state = RunState.PHASE_FAILED
        run.failure = PhaseFailure(
            phase=phase,
            service=descriptor.name,
            reason=reason,
            logs=await self._capture_logs(descriptor),
        )

    async def _fail_on_timeout(self, run: OrchestrationRun) -> None:
        phase = run.current_phase or 0
        pending = [d for d in run.phases[phase] if d.name not in run.outcomes] if run.phases else []
        error = OrchestrationTimeoutError(
            f"Orchestration exceeded {self.ceiling:g}s during phase {phase + 1}"
        )
        logger.error(error.message)
        if pending:
            await self._fail(run, phase, pending[0], error.message)
        else:
            run.overall_ready = False
            run.state = RunState.PHASE_FAILED
            run.failure = PhaseFailure(phase=phase, service="orchestrator", reason=error.message)

    async def _capture_logs(self, descriptor: ServiceDescriptor) -> str:
        if self.runtime is None:
            return ""
        try:
            return await asyncio.to_thread(
                self.runtime.logs, descriptor.runtime_name, self.log_tail_lines
            )
        except Exception as e:  # noqa: BLE001 - diagnostics only
            return f"Error fetching logs: {e}"
