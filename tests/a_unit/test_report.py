"""Unit tests for solverbench.report module."""

from __future__ import annotations

import io

import pytest

from solverbench.errors import FailReason
from solverbench.registry import ModelSize
from solverbench.report import Reporter, format_report_table, write_report_csv
from solverbench.runner import BenchmarkConfig, RunState, WorkItem
from solverbench.stats import FAILED, Measurement, Status


def make_state(config: BenchmarkConfig, results: dict) -> RunState:
    """Build a finished RunState with one measurement per pair."""
    state = RunState.create(config.work_items(), config)
    for (workload, contender), measurement in results.items():
        state.trackers[WorkItem(workload, contender)].add(measurement)
    return state


def optimal(value: float, elapsed: float) -> Measurement:
    return Measurement(Status.OPTIMAL, value, elapsed)


class TestReporterBaseline:
    """Tests for baseline selection."""

    def test_expected_value_wins(self) -> None:
        config = BenchmarkConfig(
            workloads=["W"], contenders=["R"], reference="R", expected={"W": 7.0}
        )
        state = make_state(config, {("W", "R"): optimal(42.0, 0.1)})

        assert Reporter(config).baseline(state, "W") == 7.0

    def test_reference_optimal_value(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R"], reference="R")
        state = make_state(config, {("W", "R"): optimal(42.0, 0.1)})

        assert Reporter(config).baseline(state, "W") == 42.0

    def test_reference_not_optimal(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R"], reference="R")
        state = make_state(
            config, {("W", "R"): Measurement(Status.FEASIBLE, 42.0, 0.1)}
        )

        assert Reporter(config).baseline(state, "W") is None

    def test_no_reference(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R"])
        state = make_state(config, {("W", "R"): optimal(42.0, 0.1)})

        assert Reporter(config).baseline(state, "W") is None


class TestReporterBuild:
    """Tests for Reporter.build."""

    def test_reference_comparison_passes(self) -> None:
        """42.00003 agrees with a reference of 42.0 at tolerance 1e-4."""
        config = BenchmarkConfig(
            workloads=["W"],
            contenders=["R", "Y"],
            reference="R",
            value_tolerance=1e-4,
        )
        state = make_state(
            config,
            {("W", "R"): optimal(42.0, 0.5), ("W", "Y"): optimal(42.00003, 0.3)},
        )

        rows = Reporter(config).build(state)
        by_contender = {row.contender_id: row for row in rows}

        assert by_contender["Y"].passed
        assert by_contender["Y"].elapsed_nanos == 300_000_000
        assert by_contender["R"].passed
        assert by_contender["R"].elapsed_nanos == 500_000_000

    def test_reference_disagreement_is_wrong(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R", "Z"], reference="R")
        state = make_state(
            config,
            {("W", "R"): optimal(42.0, 0.5), ("W", "Z"): optimal(43.0, 0.1)},
        )

        row = next(r for r in Reporter(config).build(state) if r.contender_id == "Z")

        assert not row.passed
        assert row.reason is FailReason.WRONG
        assert row.elapsed_nanos is None

    def test_no_baseline_accepts_optimal(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["X"])
        state = make_state(config, {("W", "X"): optimal(123.0, 0.2)})

        (row,) = Reporter(config).build(state)

        assert row.passed
        assert row.reason is None
        assert row.elapsed_nanos == 200_000_000

    def test_failed_reference_accepts_optimal(self) -> None:
        """A failed reference leaves no baseline; an optimal Z passes."""
        config = BenchmarkConfig(workloads=["W"], contenders=["R", "Z"], reference="R")
        state = make_state(
            config, {("W", "R"): FAILED, ("W", "Z"): optimal(17.0, 0.25)}
        )
        state.reasons[WorkItem("W", "R")] = FailReason.TIMEOUT

        rows = {r.contender_id: r for r in Reporter(config).build(state)}

        assert rows["Z"].passed
        assert rows["Z"].reason is None
        assert rows["Z"].elapsed_nanos == 250_000_000
        assert not rows["R"].passed
        assert rows["R"].reason is FailReason.TIMEOUT

    def test_timing_summary(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["X"])
        state = make_state(config, {("W", "X"): optimal(1.0, 0.2)})
        state.trackers[WorkItem("W", "X")].add(optimal(1.0, 0.4))

        (row,) = Reporter(config).build(state)

        assert row.measurements == 2
        assert row.timing_cv == pytest.approx(0.4714, rel=1e-3)
        assert row.elapsed_nanos == 200_000_000

    def test_no_baseline_non_optimal_defaults_to_timeout(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["X"])
        state = make_state(
            config, {("W", "X"): Measurement(Status.FEASIBLE, 1.0, 0.2)}
        )

        (row,) = Reporter(config).build(state)

        assert not row.passed
        assert row.reason is FailReason.TIMEOUT

    def test_expected_mismatch(self) -> None:
        config = BenchmarkConfig(
            workloads=["W"], contenders=["X"], expected={"W": -464.7531}
        )
        state = make_state(config, {("W", "X"): optimal(-464.0, 0.2)})

        (row,) = Reporter(config).build(state)

        assert not row.passed
        assert row.reason is FailReason.WRONG

    def test_recorded_reason_is_kept(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R", "X"], reference="R")
        state = make_state(
            config, {("W", "R"): optimal(1.0, 0.1), ("W", "X"): FAILED}
        )
        state.reasons[WorkItem("W", "X")] = FailReason.TIMEOUT

        row = next(r for r in Reporter(config).build(state) if r.contender_id == "X")

        assert row.reason is FailReason.TIMEOUT
        assert row.status is Status.FAILED

    def test_unmeasured_pair_fails(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["X"])
        state = RunState.create(config.work_items(), config)

        (row,) = Reporter(config).build(state)

        assert not row.passed
        assert row.status is Status.FAILED

    def test_rows_sorted_and_sized(self) -> None:
        config = BenchmarkConfig(workloads=["B", "A"], contenders=["y", "x"])
        state = make_state(
            config,
            {
                (w, c): optimal(1.0, 0.1)
                for w in config.workloads
                for c in config.contenders
            },
        )
        state.record_size("A", ModelSize(num_constraints=5, num_variables=8))

        rows = Reporter(config).build(state)

        assert [(r.workload_id, r.contender_id) for r in rows] == [
            ("A", "x"),
            ("A", "y"),
            ("B", "x"),
            ("B", "y"),
        ]
        assert rows[0].num_variables == 8
        assert rows[0].num_constraints == 5
        assert rows[2].num_variables is None

    def test_build_is_idempotent(self) -> None:
        config = BenchmarkConfig(workloads=["W"], contenders=["R", "X"], reference="R")
        state = make_state(
            config, {("W", "R"): optimal(1.0, 0.1), ("W", "X"): optimal(2.0, 0.1)}
        )
        reporter = Reporter(config)

        first = reporter.build(state)
        second = reporter.build(state)

        assert first == second
        assert state.reasons == {}
        assert state.fastest(WorkItem("W", "X")) == optimal(2.0, 0.1)


class TestReportOutput:
    """Tests for the table and CSV renderings."""

    def _rows(self):
        config = BenchmarkConfig(workloads=["AFIRO"], contenders=["fast", "slow"])
        state = make_state(
            config,
            {("AFIRO", "fast"): optimal(-464.75, 0.002), ("AFIRO", "slow"): FAILED},
        )
        state.reasons[WorkItem("AFIRO", "slow")] = FailReason.TIMEOUT
        state.record_size("AFIRO", ModelSize(num_constraints=27, num_variables=32))
        return Reporter(config).build(state)

    def test_table(self) -> None:
        table = format_report_table(self._rows())

        assert "FINAL RESULTS" in table
        assert "2.000ms" in table
        assert "TIMEOUT" in table
        assert "Runs" in table
        assert "0.0%" in table
        assert table.endswith("1/2 model/solver pairs passed")

    def test_csv(self) -> None:
        out = io.StringIO()
        write_report_csv(self._rows(), out)

        lines = out.getvalue().splitlines()
        assert lines[0] == "Model\tSolver\tTime\tVariables\tConstraints"
        assert lines[1] == "AFIRO\tfast\t2000000\t32\t27"
        assert lines[2] == "AFIRO\tslow\t\t32\t27"

    def test_csv_to_path(self, tmp_path) -> None:
        path = tmp_path / "results.tsv"
        write_report_csv(self._rows(), path)

        assert path.read_text().startswith("Model\tSolver\tTime")
