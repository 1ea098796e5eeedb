"""Benchmark orchestration.

Provides the round-based engine that coordinates:
- Loading suite configurations from YAML
- Driving each workload/contender pair through isolated attempts
- Settling pairs once stable, wrong, unstable or timed out
- Looping over the remaining pairs until every pair has settled
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import total_ordering
from pathlib import Path
from typing import Any

import yaml

from solverbench.errors import (
    AttemptTimeout,
    ConfigurationError,
    FailReason,
    UnknownContender,
)
from solverbench.executor import EXECUTORS, AttemptSettings, Executor
from solverbench.registry import (
    Contender,
    ContenderRegistry,
    ModelSize,
    WorkloadLoader,
    as_loader,
    import_object,
)
from solverbench.stats import (
    DEFAULT_MAX_MEASUREMENTS,
    DEFAULT_TIME_TOLERANCE,
    DEFAULT_VALUE_TOLERANCE,
    FAILED,
    Measurement,
    StabilityTracker,
    values_differ,
)

logger = logging.getLogger(__name__)


@total_ordering
@dataclass(frozen=True)
class WorkItem:
    """One workload/contender pair, ordered by (workload_id, contender_id)."""

    workload_id: str
    contender_id: str

    def __lt__(self, other: WorkItem) -> bool:
        if not isinstance(other, WorkItem):
            return NotImplemented
        return (self.workload_id, self.contender_id) < (
            other.workload_id,
            other.contender_id,
        )

    def __str__(self) -> str:
        return f"{self.workload_id}/{self.contender_id}"


@dataclass
class BenchmarkConfig:
    """Configuration for a benchmark run.

    Attributes:
        workloads: Workload identifiers handed to the loader.
        contenders: Contender names; each is paired with every workload.
        name: Suite name.
        deadline: Seconds one attempt may take before it counts as TIMEOUT.
        value_tolerance: Relative tolerance for objective values.
        time_tolerance: Relative time tolerance across rounds.
        attempt_time_tolerance: Relative time tolerance within one attempt.
        max_measurements: Measurement cap forcing stability.
        reference: Contender whose optimal results serve as the baseline.
        parallelism: Pairs processed concurrently within a round.
        expected: Known optimal value per workload.
        max_size: Skip workloads with more variables or constraints.
        isolation: "thread" or "process".
    """

    workloads: list[str]
    contenders: list[str]
    name: str = "benchmark"
    deadline: float = 60.0
    value_tolerance: float = DEFAULT_VALUE_TOLERANCE
    time_tolerance: float = DEFAULT_TIME_TOLERANCE
    attempt_time_tolerance: float = 0.1
    max_measurements: int = DEFAULT_MAX_MEASUREMENTS
    reference: str | None = None
    parallelism: int = 1
    expected: dict[str, float] = field(default_factory=dict)
    max_size: int | None = None
    isolation: str = "thread"

    def __post_init__(self) -> None:
        if self.deadline <= 0:
            raise ConfigurationError(f"deadline must be positive, got {self.deadline}")
        if self.parallelism < 1:
            raise ConfigurationError(
                f"parallelism must be at least 1, got {self.parallelism}"
            )
        if self.isolation not in EXECUTORS:
            raise ConfigurationError(
                f"isolation must be one of {sorted(EXECUTORS)}, got {self.isolation!r}"
            )

    def work_items(self) -> set[WorkItem]:
        """Cross product of workloads and contenders."""
        return {
            WorkItem(workload, contender)
            for workload in self.workloads
            for contender in self.contenders
        }

    def attempt_settings(self) -> AttemptSettings:
        return AttemptSettings(
            value_tolerance=self.value_tolerance,
            time_tolerance=self.attempt_time_tolerance,
            max_measurements=self.max_measurements,
            max_size=self.max_size,
        )

    def new_tracker(self) -> StabilityTracker:
        return StabilityTracker(
            value_tolerance=self.value_tolerance,
            time_tolerance=self.time_tolerance,
            max_measurements=self.max_measurements,
        )


@dataclass
class BenchmarkSuite:
    """A configuration together with the collaborators it names.

    Attributes:
        config: Run parameters.
        registry: Contenders available to the run.
        loader: Workload loader.
    """

    config: BenchmarkConfig
    registry: ContenderRegistry
    loader: WorkloadLoader


def load_benchmark_config(config_path: Path) -> BenchmarkSuite:
    """Load a benchmark suite from YAML.

    Contenders and the loader are given as ``module:attribute`` import
    paths. A contender mapped to null is listed but not registered, so its
    pairs settle as FAILED.

    Args:
        config_path: Path to suite.yaml file.

    Returns:
        BenchmarkSuite ready to hand to an Orchestrator.
    """
    try:
        with Path(config_path).open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    if "loader" not in data:
        raise ConfigurationError(f"{config_path} does not name a workload loader")
    loader = as_loader(import_object(data["loader"]))

    contender_paths: Mapping[str, str | None] = data.get("contenders") or {}
    if not isinstance(contender_paths, dict):
        raise ConfigurationError("'contenders' must map names to import paths")
    registry = ContenderRegistry(
        {
            str(name): import_object(path)
            for name, path in contender_paths.items()
            if path is not None
        }
    )

    workloads = data.get("workloads") or []
    if not isinstance(workloads, list):
        raise ConfigurationError("'workloads' must be a list of identifiers")

    expected = {
        str(workload): float(value)
        for workload, value in (data.get("expected") or {}).items()
    }
    max_size = data.get("max_size")

    config = BenchmarkConfig(
        name=data.get("name", "benchmark"),
        workloads=[str(w) for w in workloads],
        contenders=[str(name) for name in contender_paths],
        deadline=float(data.get("deadline", 60.0)),
        value_tolerance=float(data.get("value_tolerance", DEFAULT_VALUE_TOLERANCE)),
        time_tolerance=float(data.get("time_tolerance", DEFAULT_TIME_TOLERANCE)),
        attempt_time_tolerance=float(data.get("attempt_time_tolerance", 0.1)),
        max_measurements=int(data.get("max_measurements", DEFAULT_MAX_MEASUREMENTS)),
        reference=data.get("reference"),
        parallelism=int(data.get("parallelism", 1)),
        expected=expected,
        max_size=int(max_size) if max_size is not None else None,
        isolation=data.get("isolation", "thread"),
    )

    return BenchmarkSuite(config=config, registry=registry, loader=loader)


@dataclass
class RunState:
    """Shared state of one run.

    Each key is written by at most one pair runner at a time.

    Attributes:
        trackers: Long-lived cross-round tracker per pair.
        reasons: Fail reason per settled pair, written once at settlement.
        model_sizes: Size per workload, from the first report of it.
        rounds: Number of rounds executed.
    """

    trackers: dict[WorkItem, StabilityTracker] = field(default_factory=dict)
    reasons: dict[WorkItem, FailReason] = field(default_factory=dict)
    model_sizes: dict[str, ModelSize] = field(default_factory=dict)
    rounds: int = 0

    @classmethod
    def create(cls, items: Iterable[WorkItem], config: BenchmarkConfig) -> RunState:
        return cls(trackers={item: config.new_tracker() for item in items})

    def fastest(self, item: WorkItem) -> Measurement | None:
        tracker = self.trackers.get(item)
        return tracker.fastest if tracker is not None else None

    def record_size(self, workload_id: str, size: ModelSize) -> None:
        self.model_sizes.setdefault(workload_id, size)


class PairState(enum.Enum):
    ACTIVE = "ACTIVE"
    SETTLED = "SETTLED"


@dataclass(frozen=True)
class PairVerdict:
    """Outcome of one round for one pair.

    A SETTLED verdict with no reason is a success.
    """

    state: PairState
    reason: FailReason | None = None

    @property
    def settled(self) -> bool:
        return self.state is PairState.SETTLED


ACTIVE = PairVerdict(PairState.ACTIVE)


class PairRunner:
    """Drives one pair through one isolated attempt per round."""

    def __init__(
        self, config: BenchmarkConfig, executor: Executor, state: RunState
    ) -> None:
        self.config = config
        self.executor = executor
        self.state = state

    def run(self, item: WorkItem) -> PairVerdict:
        tracker = self.state.trackers[item]

        try:
            handle = self.executor.submit(
                item.workload_id, item.contender_id, self.config.deadline
            )
        except UnknownContender as e:
            logger.warning("%s: %s", item, e)
            return self._fail(item, tracker, FailReason.FAILED)
        except Exception as e:
            logger.warning("%s: could not start attempt: %s", item, e)
            return self._fail(item, tracker, FailReason.FAILED)

        try:
            outcome = handle.result(timeout=self.config.deadline)
        except AttemptTimeout:
            handle.cancel()
            logger.info("%-22s %s", item, FailReason.TIMEOUT.value)
            return self._fail(item, tracker, FailReason.TIMEOUT)
        except Exception as e:
            handle.cancel()
            logger.warning("%s: attempt failed: %s", item, e)
            return self._fail(item, tracker, FailReason.FAILED)

        self.state.record_size(item.workload_id, outcome.model_size)
        fastest = tracker.add(outcome.measurement)
        logger.debug("%s: measured %s, fastest %s", item, outcome.measurement, fastest)

        return self._classify(item, tracker, fastest)

    def _classify(
        self, item: WorkItem, tracker: StabilityTracker, fastest: Measurement
    ) -> PairVerdict:
        if not fastest.status.is_feasible():
            logger.info(
                "%-22s %s %s", item, fastest.status.value, FailReason.UNSTABLE.value
            )
            return self._settle(item, FailReason.UNSTABLE)

        expected = self.config.expected.get(item.workload_id)
        if expected is not None and values_differ(
            expected, fastest.value, self.config.value_tolerance
        ):
            logger.info(
                "%-22s %s %r != %r",
                item,
                FailReason.WRONG.value,
                fastest.value,
                expected,
            )
            return self._settle(item, FailReason.WRONG)

        if tracker.is_stable():
            logger.info("%-22s Time stable", item)
            return self._settle(item, None)

        return ACTIVE

    def _fail(
        self, item: WorkItem, tracker: StabilityTracker, reason: FailReason
    ) -> PairVerdict:
        tracker.add(FAILED)
        return self._settle(item, reason)

    def _settle(self, item: WorkItem, reason: FailReason | None) -> PairVerdict:
        if reason is not None:
            self.state.reasons[item] = reason
        return PairVerdict(PairState.SETTLED, reason)


@dataclass(frozen=True)
class RoundProgress:
    """Progress callback information.

    Attributes:
        round: Round just completed (1-based).
        remaining: Pairs still active after the round.
        settled: Pairs settled in the round, in order.
    """

    round: int
    remaining: int
    settled: tuple[WorkItem, ...]


# Type for progress callbacks
ProgressCallback = Callable[[RoundProgress], None]


class Orchestrator:
    """Runs rounds over the active pairs until every pair has settled."""

    def __init__(
        self,
        config: BenchmarkConfig,
        registry: Mapping[str, Contender],
        loader: WorkloadLoader | Callable[[str], Any],
        executor: Executor | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Run configuration.
            registry: Contender callables by name; copied into a frozen snapshot.
            loader: Workload loader object or ``load(workload_id)`` function.
            executor: Isolated executor; built from ``config.isolation`` if None.
            progress_callback: Optional callback invoked after each round.
        """
        self.config = config
        self.registry = ContenderRegistry(registry)
        self.loader = as_loader(loader)
        if executor is None:
            executor_cls = EXECUTORS[config.isolation]
            executor = executor_cls(
                self.registry, self.loader, config.attempt_settings()
            )
        self.executor = executor
        self.progress_callback = progress_callback

    @classmethod
    def from_suite(cls, suite: BenchmarkSuite, **kwargs: Any) -> Orchestrator:
        return cls(suite.config, suite.registry, suite.loader, **kwargs)

    def run(self) -> RunState:
        """Benchmark every pair until settled.

        Returns:
            RunState with one tracker per requested pair.
        """
        active = self.config.work_items()
        state = RunState.create(active, self.config)
        runner = PairRunner(self.config, self.executor, state)

        while active:
            state.rounds += 1
            logger.info(
                "Iteration %d with %d model/solver pairs remaining",
                state.rounds,
                len(active),
            )

            done = self._run_round(runner, active)
            active -= done

            if self.progress_callback:
                self.progress_callback(
                    RoundProgress(
                        round=state.rounds,
                        remaining=len(active),
                        settled=tuple(sorted(done)),
                    )
                )

        logger.info("All pairs settled after %d rounds", state.rounds)
        return state

    def _run_round(self, runner: PairRunner, active: set[WorkItem]) -> set[WorkItem]:
        done: set[WorkItem] = set()
        with ThreadPoolExecutor(
            max_workers=self.config.parallelism, thread_name_prefix="pair"
        ) as pool:
            futures = {pool.submit(runner.run, item): item for item in sorted(active)}
            for future in as_completed(futures):
                if future.result().settled:
                    done.add(futures[future])
        return done
