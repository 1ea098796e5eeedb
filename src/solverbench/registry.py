"""Contender registry and workload loading interfaces.

A run never reads a global registry: the mapping of contender names to
callables is copied into a read-only snapshot when the run is configured.
"""

from __future__ import annotations

import importlib
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from solverbench.errors import ConfigurationError, UnknownContender

# solve(workload, deadline_seconds) -> (status, objective value)
Contender = Callable[[Any, float], tuple[Any, float]]


class WorkloadLoader(Protocol):
    """Loads a workload (problem model) by identifier.

    Implementations raise WorkloadNotFound or WorkloadParseError.
    """

    def load(self, workload_id: str) -> Any: ...


class FunctionLoader:
    """Adapts a plain ``load(workload_id)`` function to WorkloadLoader."""

    def __init__(self, func: Callable[[str], Any]) -> None:
        self.func = func

    def load(self, workload_id: str) -> Any:
        return self.func(workload_id)

    def __repr__(self) -> str:
        return f"FunctionLoader({getattr(self.func, '__qualname__', self.func)!r})"


def as_loader(obj: WorkloadLoader | Callable[[str], Any]) -> WorkloadLoader:
    """Accept a loader object or a bare function."""
    if hasattr(obj, "load"):
        return obj  # type: ignore[return-value]
    if callable(obj):
        return FunctionLoader(obj)
    raise ConfigurationError(f"Not a workload loader: {obj!r}")


@dataclass(frozen=True)
class ModelSize:
    """Size of a loaded workload.

    Attributes:
        num_constraints: Number of constraints (expressions), if known.
        num_variables: Number of variables, if known.
    """

    num_constraints: int | None
    num_variables: int | None

    @classmethod
    def of(cls, workload: Any) -> ModelSize:
        """Read the size attributes a workload handle may expose."""
        return cls(
            num_constraints=_count(workload, "num_constraints"),
            num_variables=_count(workload, "num_variables"),
        )

    def exceeds(self, limit: int | None) -> bool:
        if limit is None:
            return False
        return any(n is not None and n > limit for n in self)

    def __iter__(self) -> Iterator[int | None]:
        yield self.num_constraints
        yield self.num_variables


def _count(workload: Any, name: str) -> int | None:
    value = getattr(workload, name, None)
    if callable(value):
        value = value()
    return int(value) if value is not None else None


class ContenderRegistry(Mapping[str, Contender]):
    """Frozen name -> contender mapping for one run."""

    def __init__(self, contenders: Mapping[str, Contender] | None = None) -> None:
        entries = dict(contenders or {})
        for name, solve in entries.items():
            if not callable(solve):
                raise ConfigurationError(f"Contender '{name}' is not callable")
        self._entries = MappingProxyType(entries)

    def __getitem__(self, name: str) -> Contender:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ContenderRegistry({sorted(self._entries)!r})"

    def resolve(self, name: str) -> Contender:
        """Look up a contender, failing fast if it is not registered."""
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownContender(name) from None


def import_object(path: str) -> Any:
    """Import an object from a ``package.module:attribute`` path."""
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigurationError(
            f"Expected 'module:attribute', got {path!r}"
        )

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            raise ConfigurationError(
                f"{module_name!r} has no attribute {attr_path!r}"
            ) from None
    return obj
