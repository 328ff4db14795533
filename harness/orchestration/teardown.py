"""
Teardown coordinator - guaranteed resource release on every exit path.

Register it before the first phase starts. Normal completion, phase
failure, SIGINT/SIGTERM and interpreter exit all funnel into the same
``teardown`` call, which runs at most once and never raises.
"""

from __future__ import annotations

import atexit
import signal
import threading
from contextlib import contextmanager
from types import FrameType
from typing import TYPE_CHECKING, Callable, Iterator

from harness.core.exceptions import TeardownError
from harness.core.logging import get_logger
from harness.orchestration.models import OrchestrationRun, RunState

if TYPE_CHECKING:
    from harness.runtime.compose import ContainerRuntime

logger = get_logger("teardown")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TeardownCoordinator:
    """
    Stop and remove everything an orchestration run started.

    Steps run in order and each one runs even if an earlier one failed:
    1. stop started services (reverse start order)
    2. remove started services
    3. compose down with volumes and orphans
    4. prune stopped project containers
    5. remove the dedicated network

    Args:
        runtime: Container runtime collaborator
        network: Dedicated network to remove (skipped if None)
        exit: Called with the exit status after a handled signal
        start_grace: Seconds teardown waits for in-flight starts to return
    """

    def __init__(
        self,
        runtime: "ContainerRuntime",
        network: str | None = None,
        exit: Callable[[int], None] | None = None,
        start_grace: float = 300.0,
    ):
        self.runtime = runtime
        self.network = network
        self.start_grace = start_grace
        self._exit = exit or _raise_system_exit
        self._lock = threading.Lock()
        self._starts = threading.Condition()
        self._in_flight = 0
        self._done = False
        self._run: OrchestrationRun | None = None
        self._registered = False
        self._deferring = False
        self._previous_handlers: dict[int, object] = {}
        self.received_signal: int | None = None
        self.failures: list[TeardownError] = []

    @property
    def done(self) -> bool:
        return self._done

    def attach(self, run: OrchestrationRun) -> None:
        """Track the run whose resources will be released."""
        self._run = run

    # -------------------------------------------------------------------------
    # In-flight starts
    # -------------------------------------------------------------------------

    def begin_start(self) -> None:
        """Mark a start command as running; call before handing it to a thread."""
        with self._starts:
            self._in_flight += 1

    def end_start(self) -> None:
        with self._starts:
            self._in_flight -= 1
            self._starts.notify_all()

    def _wait_for_starts(self) -> None:
        with self._starts:
            settled = self._starts.wait_for(lambda: self._in_flight == 0, timeout=self.start_grace)
        if not settled:
            logger.warning(
                f"{self._in_flight} start command(s) still running after "
                f"{self.start_grace:g}s, cleaning up anyway"
            )

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self) -> None:
        """Install the atexit hook and signal handlers (once)."""
        if self._registered:
            return
        atexit.register(self._atexit)
        for signum in HANDLED_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.signal(signum, self.handle_signal)
            except ValueError:
                # Not the main thread; atexit still covers normal exit
                logger.debug(f"Cannot install handler for {signal.Signals(signum).name}")
        self._registered = True

    def disarm(self) -> None:
        """Remove hooks so the stack keeps running after exit (debug mode)."""
        if not self._registered:
            return
        atexit.unregister(self._atexit)
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers.clear()
        self._registered = False

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """
        Interrupt the block on a handled signal instead of tearing down.

        The signal becomes a KeyboardInterrupt inside the block and is kept
        in ``received_signal``; the caller tears down and exits afterwards.
        """
        self._deferring = True
        try:
            yield
        finally:
            self._deferring = False

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        if self._deferring:
            logger.warning(f"Received {name}, interrupting")
            self.received_signal = signum
            raise KeyboardInterrupt(name)
        logger.warning(f"Received {name}, tearing down")
        self.teardown(self._run)
        self._exit(128 + signum)

    def _atexit(self) -> None:
        self.teardown(self._run)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def teardown(self, run: OrchestrationRun | None = None) -> None:
        """Release every resource. Re-entrant calls are no-ops."""
        with self._lock:
            if self._done:
                return
            self._done = True

        # A compose up still running would recreate containers after cleanup
        self._wait_for_starts()

        run = run or self._run
        started = list(run.started_services) if run else []

        logger.info("Cleaning up containers and networks...")

        if started:
            self._step("stop services", self.runtime.stop, list(reversed(started)))
            self._step("remove services", self.runtime.remove, list(reversed(started)))
        self._step("compose down", self.runtime.down)
        self._step("prune containers", self.runtime.prune_containers)
        if self.network:
            self._step("remove network", self.runtime.remove_network, self.network)

        if run is not None:
            run.state = RunState.TORN_DOWN

        if self.failures:
            logger.warning(f"Cleanup finished with {len(self.failures)} failed step(s)")
        else:
            logger.info("Cleanup completed")

    def _step(self, name: str, func: Callable, *args) -> None:
        try:
            func(*args)
        except Exception as e:  # noqa: BLE001 - teardown must never raise
            error = TeardownError(f"{name} failed: {e}", details={"step": name})
            self.failures.append(error)
            logger.error(error.message)


def _raise_system_exit(code: int) -> None:
    raise SystemExit(code)
