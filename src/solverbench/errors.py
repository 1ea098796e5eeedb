"""Fail reasons and exception types for benchmark runs."""

from __future__ import annotations

import enum


class FailReason(enum.Enum):
    """Why a workload/contender pair was settled without a passing result."""

    # Hangs or takes too long
    TIMEOUT = "TIMEOUT"
    # Not always the same result between executions, or a non-optimal state
    UNSTABLE = "UNSTABLE"
    # Does not match the expected value or the reference contender
    WRONG = "WRONG"
    # The contender (or loading its workload) raised or crashed
    FAILED = "FAILED"


class BenchmarkError(Exception):
    """Base class for all solverbench errors."""


class ConfigurationError(BenchmarkError):
    """Invalid suite configuration or unresolvable import path."""


class UnknownContender(ConfigurationError):
    """The contender name is not in the registry."""

    def __init__(self, contender_id: str) -> None:
        super().__init__(f"Contender '{contender_id}' is not registered")
        self.contender_id = contender_id


class WorkloadError(BenchmarkError):
    """A workload could not be made available to a contender."""


class WorkloadNotFound(WorkloadError):
    pass


class WorkloadParseError(WorkloadError):
    pass


class WorkloadTooLarge(WorkloadError):
    """The workload exceeds the configured size limit."""


class AttemptError(BenchmarkError):
    """A single measurement attempt did not produce a result."""


class AttemptTimeout(AttemptError):
    """The attempt did not finish before its deadline."""

    def __init__(self, deadline: float) -> None:
        super().__init__(f"No result within {deadline:g}s")
        self.deadline = deadline


class ExecutionFailure(AttemptError):
    """The contender raised, or the worker running it died."""
