"""Measurements and the statistics that decide when a series has settled.

Provides:
- Solver result states and timed measurements
- The FAILED sentinel used whenever an attempt produces nothing
- StabilityTracker: online stopping rule over repeated measurements
- Timing summaries (mean, median, CV) over a tracker's history
"""

from __future__ import annotations

import enum
import math
import statistics
from dataclasses import dataclass, replace

DEFAULT_VALUE_TOLERANCE = 1e-4
DEFAULT_TIME_TOLERANCE = 0.01
DEFAULT_MAX_MEASUREMENTS = 20
MIN_MEASUREMENTS = 3

# 30 minutes, far beyond any sensible deadline
FAILED_DURATION = 1800.0


class Status(enum.Enum):
    """State of a solver result."""

    OPTIMAL = "OPTIMAL"
    FEASIBLE = "FEASIBLE"
    INVALID = "INVALID"
    APPROXIMATE = "APPROXIMATE"
    FAILED = "FAILED"
    UNEXPLORED = "UNEXPLORED"

    def is_optimal(self) -> bool:
        return self is Status.OPTIMAL

    def is_feasible(self) -> bool:
        return self in (Status.OPTIMAL, Status.FEASIBLE)

    @classmethod
    def parse(cls, value: Status | str) -> Status:
        """Accept either a Status or its (case-insensitive) name."""
        if isinstance(value, Status):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown solver status: {value!r}") from None


@dataclass(frozen=True)
class Measurement:
    """One timed outcome of running a contender on a workload.

    Attributes:
        status: Result state reported by the contender.
        value: Objective function value.
        elapsed: Wall-clock duration in seconds, or None if nothing was timed.
    """

    status: Status
    value: float
    elapsed: float | None

    def with_status(self, status: Status) -> Measurement:
        return replace(self, status=status)

    @property
    def elapsed_nanos(self) -> int | None:
        if self.elapsed is None:
            return None
        return round(self.elapsed * 1e9)


FAILED = Measurement(status=Status.FAILED, value=0.0, elapsed=FAILED_DURATION)


def is_similar(value1: float, value2: float, half_relative_error: float) -> bool:
    """Check two durations against a relative band.

    The difference is divided by the sum of both values, not by either one,
    so the band is |d1 - d2| / (d1 + d2) < half_relative_error.
    """
    total = value1 + value2
    if total == 0.0:
        return value1 == value2
    return abs(value1 - value2) / total < half_relative_error


def values_differ(expected: float, actual: float, tolerance: float) -> bool:
    """Relative-tolerance inequality for objective values."""
    return not math.isclose(
        expected, actual, rel_tol=tolerance, abs_tol=tolerance * tolerance
    )


@dataclass(frozen=True)
class TimingStats:
    """Summary of the durations recorded for one series.

    Attributes:
        count: Number of durations.
        mean: Arithmetic mean (seconds).
        median: Median (seconds).
        stddev: Sample standard deviation.
        cv: Coefficient of variation (stddev/mean).
        min: Fastest duration.
        max: Slowest duration.
    """

    count: int
    mean: float
    median: float
    stddev: float
    cv: float
    min: float
    max: float


def compute_timing_stats(durations: list[float]) -> TimingStats:
    """Compute a timing summary; all zeros for an empty list."""
    if not durations:
        return TimingStats(
            count=0, mean=0.0, median=0.0, stddev=0.0, cv=0.0, min=0.0, max=0.0
        )

    mean = statistics.mean(durations)
    stddev = statistics.stdev(durations) if len(durations) > 1 else 0.0
    return TimingStats(
        count=len(durations),
        mean=mean,
        median=statistics.median(durations),
        stddev=stddev,
        cv=stddev / mean if mean > 0 else 0.0,
        min=min(durations),
        max=max(durations),
    )


class StabilityTracker:
    """Accumulates measurements for one workload/contender pair.

    Keeps the full history and a representative ``fastest`` measurement.
    Disagreement between runs is never averaged away: a status mismatch
    downgrades the representative to INVALID, a value mismatch to
    APPROXIMATE.
    """

    def __init__(
        self,
        value_tolerance: float = DEFAULT_VALUE_TOLERANCE,
        time_tolerance: float = DEFAULT_TIME_TOLERANCE,
        max_measurements: int = DEFAULT_MAX_MEASUREMENTS,
    ) -> None:
        """Initialize an empty tracker.

        Args:
            value_tolerance: Relative tolerance when comparing objective values.
            time_tolerance: Relative time tolerance; consecutive durations must
                agree within half of it.
            max_measurements: Count at which the series is declared stable
                whatever the timing noise.
        """
        if max_measurements < MIN_MEASUREMENTS:
            raise ValueError(
                f"max_measurements must be at least {MIN_MEASUREMENTS}, "
                f"got {max_measurements}"
            )
        self.value_tolerance = value_tolerance
        self.half_time_tolerance = time_tolerance / 2.0
        self.max_measurements = max_measurements
        self.fastest: Measurement | None = None
        self._all: list[Measurement] = []

    def __len__(self) -> int:
        return len(self._all)

    def __repr__(self) -> str:
        return f"StabilityTracker(n={len(self._all)}, fastest={self.fastest!r})"

    @property
    def measurements(self) -> tuple[Measurement, ...]:
        return tuple(self._all)

    def add(self, measurement: Measurement | None) -> Measurement:
        """Record a measurement and return the updated representative."""
        if measurement is None or measurement.elapsed is None:
            self.fastest = FAILED
            return self.fastest

        self._all.append(measurement)

        current = self.fastest
        if current is None:
            self.fastest = measurement
        elif current.status is not measurement.status:
            self.fastest = measurement.with_status(Status.INVALID)
        elif values_differ(current.value, measurement.value, self.value_tolerance):
            self.fastest = measurement.with_status(Status.APPROXIMATE)
        elif current.elapsed is None or measurement.elapsed < current.elapsed:
            self.fastest = measurement

        return self.fastest

    def is_stable(self) -> bool:
        size = len(self._all)
        if size < MIN_MEASUREMENTS:
            return False
        if size >= self.max_measurements:
            return True

        latest1 = self._all[-1].elapsed
        latest2 = self._all[-2].elapsed
        return is_similar(latest1, latest2, self.half_time_tolerance)

    def timing_stats(self) -> TimingStats:
        return compute_timing_stats(
            [m.elapsed for m in self._all if m.elapsed is not None]
        )

