"""Final classification and reporting of benchmark results.

Each settled pair is judged against a baseline: the configured expected
value for its workload, else the reference contender's optimal result.
Without a baseline an optimal result is accepted on faith.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from solverbench.errors import FailReason
from solverbench.registry import ModelSize
from solverbench.runner import BenchmarkConfig, RunState, WorkItem
from solverbench.stats import FAILED, Measurement, Status, values_differ

WIDTH = 22
TABLE_WIDTH = 4 * WIDTH + 26


@dataclass(frozen=True)
class ReportRow:
    """One line of the final report.

    Attributes:
        workload_id: Workload identifier.
        contender_id: Contender name.
        elapsed_nanos: Fastest duration on pass, None on fail.
        num_variables: Workload variables, if known.
        num_constraints: Workload constraints, if known.
        status: Final representative status.
        value: Final representative objective value.
        passed: Whether the result was accepted.
        reason: Fail reason when not passed.
        measurements: Number of timed measurements behind the row.
        timing_cv: Coefficient of variation of those durations.
    """

    workload_id: str
    contender_id: str
    elapsed_nanos: int | None
    num_variables: int | None
    num_constraints: int | None
    status: Status
    value: float
    passed: bool
    reason: FailReason | None = None
    measurements: int = 0
    timing_cv: float = 0.0


class Reporter:
    """Builds the ordered report table from a finished run."""

    def __init__(self, config: BenchmarkConfig) -> None:
        self.config = config

    def baseline(self, state: RunState, workload_id: str) -> float | None:
        """Expected value, else the reference contender's optimal value."""
        expected = self.config.expected.get(workload_id)
        if expected is not None:
            return expected

        if self.config.reference is None:
            return None
        reference = state.fastest(WorkItem(workload_id, self.config.reference))
        if reference is not None and reference.status.is_optimal():
            return reference.value
        return None

    def classify(
        self, state: RunState, item: WorkItem, fastest: Measurement
    ) -> tuple[bool, FailReason | None]:
        recorded = state.reasons.get(item)
        baseline = self.baseline(state, item.workload_id)

        if baseline is not None:
            if fastest.status.is_optimal() and not values_differ(
                baseline, fastest.value, self.config.value_tolerance
            ):
                return True, None
            return False, recorded or FailReason.WRONG

        if fastest.status.is_optimal():
            return True, None
        return False, recorded or FailReason.TIMEOUT

    def build(self, state: RunState) -> list[ReportRow]:
        """Classify every pair; does not modify ``state``."""
        rows = []
        for item in sorted(state.trackers):
            fastest = state.fastest(item) or FAILED
            timing = state.trackers[item].timing_stats()
            passed, reason = self.classify(state, item, fastest)
            size = state.model_sizes.get(item.workload_id, ModelSize(None, None))
            rows.append(
                ReportRow(
                    workload_id=item.workload_id,
                    contender_id=item.contender_id,
                    elapsed_nanos=fastest.elapsed_nanos if passed else None,
                    num_variables=size.num_variables,
                    num_constraints=size.num_constraints,
                    status=fastest.status,
                    value=fastest.value,
                    passed=passed,
                    reason=reason,
                    measurements=timing.count,
                    timing_cv=timing.cv,
                )
            )
        return rows


def _format_duration(nanos: int) -> str:
    seconds = nanos / 1e9
    if seconds < 1.0:
        return f"{seconds * 1000:.3f}ms"
    return f"{seconds:.3f}s"


def format_report_table(rows: list[ReportRow]) -> str:
    """Format report rows as a fixed-width table.

    Args:
        rows: Rows from Reporter.build.

    Returns:
        Formatted table string.
    """
    lines = []

    lines.append("=" * TABLE_WIDTH)
    lines.append("FINAL RESULTS")
    lines.append("=" * TABLE_WIDTH)

    header = (
        f"{'Model':<{WIDTH}}{'Solver':<{WIDTH}}{'State':<{WIDTH}}"
        f"{'Value / Reason':<{WIDTH}}{'Time':>12}{'Runs':>6}{'CV':>8}"
    )
    lines.append(header)
    lines.append("-" * TABLE_WIDTH)

    for row in rows:
        line = f"{row.workload_id:<{WIDTH}}{row.contender_id:<{WIDTH}}"
        if row.passed:
            line += f"{row.status.value:<{WIDTH}}{row.value:<{WIDTH}.6g}"
            line += f"{_format_duration(row.elapsed_nanos):>12}"
            line += f"{row.measurements:>6}{row.timing_cv * 100:>7.1f}%"
        else:
            reason = row.reason.value if row.reason else "-"
            line += f"{Status.FAILED.value:<{WIDTH}}{reason:<{WIDTH}}{'-':>12}"
        lines.append(line)

    passed = sum(1 for row in rows if row.passed)
    lines.append("-" * TABLE_WIDTH)
    lines.append(f"{passed}/{len(rows)} model/solver pairs passed")

    return "\n".join(lines)


def write_report_csv(rows: list[ReportRow], out: Path | str | TextIO) -> None:
    """Write the tab-separated Model/Solver/Time table.

    Time is in nanoseconds, blank for failed pairs.
    """
    if isinstance(out, (str, Path)):
        with Path(out).open("w", newline="") as f:
            write_report_csv(rows, f)
        return

    writer = csv.writer(out, delimiter="\t", lineterminator="\n")
    writer.writerow(["Model", "Solver", "Time", "Variables", "Constraints"])
    for row in rows:
        writer.writerow(
            [
                row.workload_id,
                row.contender_id,
                "" if row.elapsed_nanos is None else row.elapsed_nanos,
                "" if row.num_variables is None else row.num_variables,
                "" if row.num_constraints is None else row.num_constraints,
            ]
        )
