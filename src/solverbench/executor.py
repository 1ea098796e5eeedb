"""Isolated execution of measurement attempts.

One attempt loads a workload and runs a contender on it repeatedly until
the timings settle. Attempts run outside the orchestrator's own failure
domain:
- ThreadExecutor: one daemon thread per attempt, abandoned on timeout
- ProcessExecutor: one child process per attempt, terminated on timeout

Either way the caller waits on an AttemptHandle bounded by the deadline and
can always walk away from it.
"""

from __future__ import annotations

import concurrent.futures
import functools
import logging
import multiprocessing
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from solverbench.errors import (
    AttemptError,
    AttemptTimeout,
    ExecutionFailure,
    WorkloadTooLarge,
)
from solverbench.registry import (
    Contender,
    ContenderRegistry,
    ModelSize,
    WorkloadLoader,
)
from solverbench.stats import (
    DEFAULT_MAX_MEASUREMENTS,
    DEFAULT_VALUE_TOLERANCE,
    Measurement,
    StabilityTracker,
    Status,
)

logger = logging.getLogger(__name__)

# Seconds to wait for a terminated child before killing it
_TERMINATE_GRACE = 1.0


@dataclass(frozen=True)
class AttemptSettings:
    """Parameters of one measurement attempt.

    Attributes:
        value_tolerance: Relative tolerance for objective values.
        time_tolerance: Relative time tolerance of the attempt's own
            repetitions (looser than the cross-round one).
        max_measurements: Repetition cap inside one attempt.
        max_size: Skip workloads with more variables or constraints.
    """

    value_tolerance: float = DEFAULT_VALUE_TOLERANCE
    time_tolerance: float = 0.1
    max_measurements: int = DEFAULT_MAX_MEASUREMENTS
    max_size: int | None = None


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of a successful attempt."""

    measurement: Measurement
    model_size: ModelSize


def time_solve(solve: Contender, workload: Any, deadline: float) -> Measurement:
    """Time a single contender call."""
    start = time.perf_counter()
    status, value = solve(workload, deadline)
    elapsed = time.perf_counter() - start
    return Measurement(
        status=Status.parse(status), value=float(value), elapsed=elapsed
    )


def _not_cancelled() -> bool:
    return False


def measure_attempt(
    loader: WorkloadLoader,
    solve: Contender,
    workload_id: str,
    deadline: float,
    settings: AttemptSettings,
    cancelled: Callable[[], bool] = _not_cancelled,
) -> AttemptOutcome:
    """Load a workload and solve it until the attempt's timings are stable.

    Only the solve calls are timed. ``cancelled`` is polled between
    repetitions.

    Returns:
        The fastest representative measurement and the workload's size.

    Raises:
        WorkloadError: If loading fails or the workload is too large.
        ExecutionFailure: If the attempt was cancelled.
    """
    workload = loader.load(workload_id)
    size = ModelSize.of(workload)
    if size.exceeds(settings.max_size):
        raise WorkloadTooLarge(
            f"{workload_id} exceeds size limit {settings.max_size}: "
            f"{size.num_variables} variables, {size.num_constraints} constraints"
        )

    tracker = StabilityTracker(
        value_tolerance=settings.value_tolerance,
        time_tolerance=settings.time_tolerance,
        max_measurements=settings.max_measurements,
    )
    while not tracker.is_stable():
        if cancelled():
            raise ExecutionFailure(f"Attempt on {workload_id} cancelled")
        tracker.add(time_solve(solve, workload, deadline))

    return AttemptOutcome(measurement=tracker.fastest, model_size=size)


# Runs one attempt given a cancellation probe
AttemptTarget = Callable[[Callable[[], bool]], AttemptOutcome]


class AttemptHandle:
    """Pending attempt that the caller may wait on or abandon."""

    def result(self, timeout: float) -> AttemptOutcome:
        """Wait at most ``timeout`` seconds for the outcome.

        Raises:
            AttemptTimeout: No outcome in time.
            ExecutionFailure: The attempt raised or its worker died.
        """
        raise NotImplementedError

    def cancel(self) -> None:
        """Best-effort cancellation; a late outcome is discarded."""
        raise NotImplementedError


class ThreadAttempt(AttemptHandle):
    """Attempt running in its own daemon thread."""

    def __init__(self, target: AttemptTarget, name: str) -> None:
        self._future: concurrent.futures.Future[AttemptOutcome] = (
            concurrent.futures.Future()
        )
        self._cancel = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(target,), name=name, daemon=True
        )
        self._thread.start()

    def _run(self, target: AttemptTarget) -> None:
        if not self._future.set_running_or_notify_cancel():
            return
        try:
            outcome = target(self._cancel.is_set)
        except Exception as e:
            self._future.set_exception(e)
        else:
            self._future.set_result(outcome)

    def result(self, timeout: float) -> AttemptOutcome:
        try:
            return self._future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            # The contender itself may have raised TimeoutError
            if not self._future.done():
                raise AttemptTimeout(timeout) from None
            raise ExecutionFailure(f"{type(e).__name__}: {e}") from e
        except AttemptError:
            raise
        except Exception as e:
            raise ExecutionFailure(f"{type(e).__name__}: {e}") from e

    def cancel(self) -> None:
        self._cancel.set()


def _run_in_child(target: AttemptTarget, sender: Any) -> None:
    """Child process entry point: report the outcome through the pipe."""
    try:
        outcome = target(_not_cancelled)
    except Exception as e:
        sender.send(("error", f"{type(e).__name__}: {e}"))
    else:
        sender.send(("ok", outcome))
    finally:
        sender.close()


class ProcessAttempt(AttemptHandle):
    """Attempt running in its own child process.

    The child is not daemonic so a contender may start processes of its own;
    every exit path joins it and cancel() terminates it.
    """

    def __init__(
        self,
        context: Any,
        target: AttemptTarget,
        name: str,
    ) -> None:
        self._receiver, sender = context.Pipe(duplex=False)
        self._process = context.Process(
            target=_run_in_child, args=(target, sender), name=name
        )
        self._process.start()
        # Only the child writes; closing our copy makes a dead child read as EOF
        sender.close()

    def result(self, timeout: float) -> AttemptOutcome:
        if not self._receiver.poll(timeout):
            raise AttemptTimeout(timeout)

        try:
            kind, payload = self._receiver.recv()
        except EOFError:
            self._process.join(_TERMINATE_GRACE)
            raise ExecutionFailure(
                f"Worker {self._process.name} exited with code {self._process.exitcode}"
            ) from None
        finally:
            self._receiver.close()

        self._process.join(_TERMINATE_GRACE)
        if kind == "ok":
            return payload
        raise ExecutionFailure(payload)

    def cancel(self) -> None:
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(_TERMINATE_GRACE)
        if self._process.is_alive():
            self._process.kill()
            self._process.join(_TERMINATE_GRACE)
        self._receiver.close()


class Executor:
    """Submits measurement attempts for workload/contender pairs."""

    def __init__(
        self,
        registry: ContenderRegistry,
        loader: WorkloadLoader,
        settings: AttemptSettings | None = None,
    ) -> None:
        self.registry = registry
        self.loader = loader
        self.settings = settings or AttemptSettings()

    def _target(
        self, workload_id: str, contender_id: str, deadline: float
    ) -> AttemptTarget:
        solve = self.registry.resolve(contender_id)
        return functools.partial(
            measure_attempt, self.loader, solve, workload_id, deadline, self.settings
        )

    def submit(
        self, workload_id: str, contender_id: str, deadline: float
    ) -> AttemptHandle:
        """Start one attempt.

        Raises:
            UnknownContender: If the contender is not registered.
        """
        raise NotImplementedError


class ThreadExecutor(Executor):
    """Task-level isolation with cooperative cancellation."""

    def submit(
        self, workload_id: str, contender_id: str, deadline: float
    ) -> AttemptHandle:
        target = self._target(workload_id, contender_id, deadline)
        logger.debug("Submitting %s/%s to a thread", workload_id, contender_id)
        return ThreadAttempt(target, name=f"attempt-{workload_id}-{contender_id}")


class ProcessExecutor(Executor):
    """Process-level isolation; hung or crashed contenders are terminated.

    The default start method is ``fork`` where available so contenders and
    loaders need not be picklable.
    """

    def __init__(
        self,
        registry: ContenderRegistry,
        loader: WorkloadLoader,
        settings: AttemptSettings | None = None,
        start_method: str | None = None,
    ) -> None:
        super().__init__(registry, loader, settings)
        if start_method is None:
            available = multiprocessing.get_all_start_methods()
            start_method = "fork" if "fork" in available else "spawn"
        self.context = multiprocessing.get_context(start_method)

    def submit(
        self, workload_id: str, contender_id: str, deadline: float
    ) -> AttemptHandle:
        target = self._target(workload_id, contender_id, deadline)
        logger.debug(
            "Submitting %s/%s to a child process", workload_id, contender_id
        )
        return ProcessAttempt(
            self.context, target, name=f"attempt-{workload_id}-{contender_id}"
        )


EXECUTORS: dict[str, type[Executor]] = {
    "thread": ThreadExecutor,
    "process": ProcessExecutor,
}
