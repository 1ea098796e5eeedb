"""Statistical benchmark orchestration for optimisation solvers.

This package repeatedly measures workload/contender pairs with:
- An online stopping rule deciding when timings have stabilised
- Consistency auditing of results across repeated runs
- Thread or process isolation of crashing and hanging contenders
- Comparison against expected values or a reference contender
"""

from __future__ import annotations

from solverbench.errors import FailReason
from solverbench.executor import ProcessExecutor, ThreadExecutor
from solverbench.registry import ContenderRegistry, ModelSize
from solverbench.report import Reporter, ReportRow, format_report_table
from solverbench.runner import (
    BenchmarkConfig,
    Orchestrator,
    RunState,
    WorkItem,
    load_benchmark_config,
)
from solverbench.stats import FAILED, Measurement, StabilityTracker, Status

__all__ = [
    "FAILED",
    "BenchmarkConfig",
    "ContenderRegistry",
    "FailReason",
    "Measurement",
    "ModelSize",
    "Orchestrator",
    "ProcessExecutor",
    "ReportRow",
    "Reporter",
    "RunState",
    "StabilityTracker",
    "Status",
    "ThreadExecutor",
    "WorkItem",
    "format_report_table",
    "load_benchmark_config",
]
