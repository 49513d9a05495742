"""
Tests for generator state persistence
"""

import json
from pathlib import Path

import pytest

from tiny64.kernel.errors import StateFileCorrupted
from tiny64.kernel.sequence import GeneratorState
from tiny64.kernel.state_store import FileStateStore, MemoryStateStore


def test_memory_store_returns_same_object() -> None:
    store = MemoryStateStore()
    state = store.load()
    state.sequence = 3

    assert store.load().sequence == 3
    assert store.mode == "memory"


def test_missing_state_file_starts_fresh(tmp_path: Path) -> None:
    store = FileStateStore(tmp_path / "gen.state")
    state = store.load()

    assert state == GeneratorState()
    assert store.mode == "shared"


def test_saved_state_is_visible_to_another_store(tmp_path: Path) -> None:
    path = tmp_path / "gen.state"
    FileStateStore(path).save(GeneratorState(last_time_ms=1_700_000_000_000, sequence=17))

    loaded = FileStateStore(path).load()

    assert loaded.last_time_ms == 1_700_000_000_000
    assert loaded.sequence == 17


def test_state_file_format(tmp_path: Path) -> None:
    path = tmp_path / "gen.state"
    FileStateStore(path).save(GeneratorState(last_time_ms=5, sequence=6))

    assert json.loads(path.read_text()) == {"last_time_ms": 5, "sequence": 6}


def test_save_leaves_no_temporary_files(tmp_path: Path) -> None:
    path = tmp_path / "gen.state"
    store = FileStateStore(path)
    for i in range(5):
        store.save(GeneratorState(last_time_ms=i, sequence=0))

    assert [p.name for p in tmp_path.iterdir()] == ["gen.state"]


@pytest.mark.parametrize("content", [
    b"not json",
    b'{"last_time_ms": 10, "sequence": 5000}',
    b'{"last_time_ms": -1, "sequence": 0}',
    b"[]",
    b"\xff\xfe\x00garbage",
    b'{"last_time_ms": 10, "sequence": "\xff"}',
])
def test_corrupted_state_file(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "gen.state"
    path.write_bytes(content)

    with pytest.raises(StateFileCorrupted) as exc_info:
        FileStateStore(path).load()
    assert exc_info.value.state_path == str(path)


def test_state_path_that_is_a_directory(tmp_path: Path) -> None:
    path = tmp_path / "gen.state"
    path.mkdir()

    with pytest.raises(StateFileCorrupted, match="directory"):
        FileStateStore(path).load()
