"""Integration tests for saving and restoring variable stores."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.config import ParamStoreConfig
from store.path import Path as VariablePath
from store.variable_store import VariableStore, new_variable_store

torch = pytest.importorskip("torch")


def _declare(root: VariablePath) -> tuple[object, object]:
    t2 = root.sub("a").sub("b").entry("t2").or_ones([3])
    t1 = root.entry("t1").or_zeros([4])
    nested = root.sub("a").sub("b").sub("ccc")
    nested.ones("t123", [3])
    nested.ones("t123", [3])
    return t1, t2


def _cpu_store(seed: int = 0) -> VariableStore:
    config = ParamStoreConfig(device="cpu", random_seed=seed)
    return new_variable_store(config=config)


def test_load_overwrites_by_name_not_position(tmp_path: Path) -> None:
    """Restored values should follow names even when declaration order differs."""
    archive_path = tmp_path / "vsload.pst"
    source = _cpu_store()
    t1, t2 = _declare(source.root())
    with torch.no_grad():
        t1.tensor.fill_(42.0)
    source.save(archive_path)
    restored = _cpu_store()
    restored_root = restored.root()
    r1 = restored_root.entry("t1").or_zeros([4])
    r2 = restored_root.sub("a").sub("b").entry("t2").or_ones([3])

    restored.load(archive_path)

    assert (
        r2.tensor.tolist() == [1.0, 1.0, 1.0]
        and r1.tensor.tolist() == [42.0, 42.0, 42.0, 42.0]
        and list(restored.variables()) == ["t1", "a.b.t2"]
    )


def test_save_then_load_reproduces_identical_bytes(tmp_path: Path) -> None:
    """Every dtype and initializer should round-trip byte for byte."""
    archive_path = tmp_path / "model.pst"
    source = _cpu_store(seed=1)
    root = source.root()
    root.sub("conv").kaiming_uniform("weight", [8, 3, 3, 3])
    root.sub("conv").uniform("bias", [8], -0.1, 0.1)
    root.sub("norm").randn("scale", [8], 1.0, 0.02, dtype="float64")
    root.sub("norm").ones_no_train("count", [1], dtype="int64")
    root.sub("embed").randn_standard("table", [5, 4], dtype="bfloat16")
    source.save(archive_path)

    restored = _cpu_store(seed=2)
    restored_root = restored.root()
    restored_root.sub("conv").zeros("weight", [8, 3, 3, 3])
    restored_root.sub("conv").zeros("bias", [8])
    restored_root.sub("norm").zeros("scale", [8], dtype="float64")
    restored_root.sub("norm").zeros_no_train("count", [1], dtype="int64")
    restored_root.sub("embed").zeros("table", [5, 4], dtype="bfloat16")
    restored.load(archive_path)

    engine = source.engine
    source_bytes = {
        name: engine.to_host_bytes(handle.tensor) for name, handle in source.variables().items()
    }
    restored_bytes = {
        name: engine.to_host_bytes(handle.tensor) for name, handle in restored.variables().items()
    }
    assert source_bytes == restored_bytes


def test_summary_after_roundtrip_matches_source(tmp_path: Path) -> None:
    """Summaries of source and restored stores should agree."""
    archive_path = tmp_path / "model.pst"
    source = _cpu_store()
    _declare(source.root())
    source.save(archive_path)
    restored = _cpu_store()
    _declare(restored.root())

    restored.load(archive_path)

    assert list(restored.summary()) == list(source.summary())


def test_destroy_after_save_keeps_archive_usable(tmp_path: Path) -> None:
    """Archives should outlive the store that wrote them."""
    archive_path = tmp_path / "model.pst"
    source = _cpu_store()
    t1, _ = _declare(source.root())
    with torch.no_grad():
        t1.tensor.fill_(3.0)
    source.save(archive_path)
    source.destroy()
    restored = _cpu_store()
    r1, _ = _declare(restored.root())

    restored.load(archive_path)

    assert r1.tensor.tolist() == [3.0, 3.0, 3.0, 3.0] and not t1.is_alive()
