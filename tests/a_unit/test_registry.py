"""Unit tests for solverbench.registry module."""

from __future__ import annotations

import math
import os.path
from types import SimpleNamespace

import pytest

from solverbench.errors import ConfigurationError, UnknownContender
from solverbench.registry import (
    ContenderRegistry,
    FunctionLoader,
    ModelSize,
    as_loader,
    import_object,
)


def solve_ok(workload, deadline):
    return "OPTIMAL", 1.0


class TestContenderRegistry:
    """Tests for the frozen contender registry."""

    def test_lookup(self) -> None:
        registry = ContenderRegistry({"ok": solve_ok})

        assert registry["ok"] is solve_ok
        assert registry.resolve("ok") is solve_ok
        assert list(registry) == ["ok"]
        assert len(registry) == 1

    def test_snapshot_ignores_later_changes(self) -> None:
        source = {"ok": solve_ok}
        registry = ContenderRegistry(source)
        source["late"] = solve_ok

        assert "late" not in registry

    def test_is_read_only(self) -> None:
        registry = ContenderRegistry({"ok": solve_ok})

        with pytest.raises(TypeError):
            registry["other"] = solve_ok  # type: ignore[index]

    def test_unknown_contender(self) -> None:
        registry = ContenderRegistry({"ok": solve_ok})

        with pytest.raises(UnknownContender) as exc_info:
            registry.resolve("ghost")

        assert exc_info.value.contender_id == "ghost"
        assert isinstance(exc_info.value, ConfigurationError)

    def test_rejects_non_callable(self) -> None:
        with pytest.raises(ConfigurationError, match="not callable"):
            ContenderRegistry({"bad": 42})  # type: ignore[dict-item]

    def test_empty(self) -> None:
        assert len(ContenderRegistry()) == 0


class TestImportObject:
    """Tests for import_object."""

    def test_module_attribute(self) -> None:
        assert import_object("math:sqrt") is math.sqrt
        assert import_object("os.path:join") is os.path.join

    def test_nested_attribute(self) -> None:
        assert import_object("solverbench.stats:Status.OPTIMAL").value == "OPTIMAL"

    @pytest.mark.parametrize("path", ["math", "math:", ":sqrt", ""])
    def test_malformed_path(self, path: str) -> None:
        with pytest.raises(ConfigurationError, match="module:attribute"):
            import_object(path)

    def test_missing_module(self) -> None:
        with pytest.raises(ConfigurationError, match="Cannot import"):
            import_object("solverbench_no_such_module:solve")

    def test_missing_attribute(self) -> None:
        with pytest.raises(ConfigurationError, match="no attribute"):
            import_object("math:no_such_function")


class TestLoaders:
    """Tests for loader adaptation."""

    def test_function_is_wrapped(self) -> None:
        loader = as_loader(str.upper)

        assert isinstance(loader, FunctionLoader)
        assert loader.load("afiro") == "AFIRO"

    def test_loader_object_kept(self) -> None:
        obj = SimpleNamespace(load=lambda workload_id: workload_id)

        assert as_loader(obj) is obj

    def test_rejects_other_objects(self) -> None:
        with pytest.raises(ConfigurationError):
            as_loader(42)  # type: ignore[arg-type]


class TestModelSize:
    """Tests for ModelSize."""

    def test_of_attributes(self) -> None:
        size = ModelSize.of(SimpleNamespace(num_variables=32, num_constraints=27))

        assert size == ModelSize(num_constraints=27, num_variables=32)

    def test_of_methods(self) -> None:
        workload = SimpleNamespace(
            num_variables=lambda: 4, num_constraints=lambda: 3
        )

        assert tuple(ModelSize.of(workload)) == (3, 4)

    def test_of_opaque_workload(self) -> None:
        assert ModelSize.of(object()) == ModelSize(None, None)

    def test_exceeds(self) -> None:
        size = ModelSize(num_constraints=10, num_variables=50)

        assert not size.exceeds(None)
        assert not size.exceeds(50)
        assert size.exceeds(49)
        assert not ModelSize(None, None).exceeds(0)
