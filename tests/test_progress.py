"""Tests for the checkpoint store.

Verifies atomic save, tolerant load (missing, malformed, foreign,
invariant-violating records), idempotent clear, and listing.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from db_migrate.errors import CheckpointError
from db_migrate.progress import ProgressCheckpoint, ProgressStore


# ============================================================================
# Test: ProgressCheckpoint model
# ============================================================================


class TestProgressCheckpoint:
    """Checkpoint invariants."""

    def test_cursor_may_equal_total(self) -> None:
        cp = ProgressCheckpoint(table_name="users", cursor=2500, total_count=2500)
        assert cp.cursor == cp.total_count

    def test_cursor_beyond_total_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProgressCheckpoint(table_name="users", cursor=2501, total_count=2500)

    def test_negative_cursor_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProgressCheckpoint(table_name="users", cursor=-1, total_count=10)

    def test_timestamp_is_utc(self) -> None:
        cp = ProgressCheckpoint(table_name="users", cursor=0, total_count=0)
        assert cp.timestamp.utcoffset().total_seconds() == 0


# ============================================================================
# Test: ProgressStore
# ============================================================================


class TestProgressStore:
    """File-backed store behavior."""

    def test_save_creates_directory_and_file(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path / "nested" / "logs")
        store.save("users", cursor=1000, total=2500)

        path = tmp_path / "nested" / "logs" / "users_progress.json"
        assert path.exists()
        data = json.loads(path.read_text())
        assert data["table_name"] == "users"
        assert data["cursor"] == 1000
        assert data["total_count"] == 2500
        assert "timestamp" in data

    def test_load_returns_saved_checkpoint(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        store.save("users", cursor=2000, total=2500)

        cp = store.load("users")
        assert cp is not None
        assert (cp.table_name, cp.cursor, cp.total_count) == ("users", 2000, 2500)

    def test_save_overwrites_previous(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        store.save("users", cursor=1000, total=2500)
        store.save("users", cursor=2000, total=2500)

        assert store.load("users").cursor == 2000

    def test_save_leaves_no_temp_files(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        store.save("users", cursor=1, total=2)

        assert [p.name for p in tmp_path.iterdir()] == ["users_progress.json"]

    def test_save_rejects_invalid_cursor(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        with pytest.raises(ValidationError):
            store.save("users", cursor=5, total=3)
        assert store.load("users") is None

    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        assert ProgressStore(tmp_path / "absent").load("users") is None

    def test_load_malformed_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "users_progress.json").write_text("{not json")
        assert ProgressStore(tmp_path).load("users") is None

    def test_load_undecodable_bytes_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "users_progress.json").write_bytes(b'{"table_name": "\xff\xfe"}')
        store = ProgressStore(tmp_path)

        assert store.load("users") is None
        assert store.list_checkpoints() == []

    def test_load_wrong_shape_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "users_progress.json").write_text(json.dumps({"cursor": "many"}))
        assert ProgressStore(tmp_path).load("users") is None

    def test_load_invariant_violation_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "users_progress.json").write_text(
            json.dumps({"table_name": "users", "cursor": 10, "total_count": 5})
        )
        assert ProgressStore(tmp_path).load("users") is None

    def test_load_other_table_record_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "users_progress.json").write_text(
            json.dumps({"table_name": "orders", "cursor": 1, "total_count": 5})
        )
        assert ProgressStore(tmp_path).load("users") is None

    def test_clear_removes_checkpoint(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        store.save("users", cursor=1, total=2)
        store.clear("users")

        assert store.load("users") is None
        assert not store.path_for("users").exists()

    def test_clear_missing_is_noop(self, tmp_path: Path) -> None:
        ProgressStore(tmp_path).clear("users")

    def test_list_checkpoints_sorted_and_skips_bad_files(self, tmp_path: Path) -> None:
        store = ProgressStore(tmp_path)
        store.save("users", cursor=1, total=2)
        store.save("accounts", cursor=3, total=4)
        (tmp_path / "broken_progress.json").write_text("[]")

        names = [cp.table_name for cp in store.list_checkpoints()]
        assert names == ["accounts", "users"]

    @pytest.mark.parametrize("name", ["../x", "a/b", "..\\x", "..", ""])
    def test_names_with_path_parts_rejected(self, tmp_path: Path, name: str) -> None:
        store = ProgressStore(tmp_path / "progress")
        (tmp_path / "x_progress.json").write_text("{}")

        with pytest.raises(CheckpointError):
            store.clear(name)
        with pytest.raises(CheckpointError):
            store.save(name, cursor=0, total=0)
        assert (tmp_path / "x_progress.json").exists()

    def test_unwritable_directory_raises_checkpoint_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "progress"
        blocker.write_text("not a directory")

        with pytest.raises(CheckpointError, match="users"):
            ProgressStore(blocker).save("users", cursor=1, total=2)

    def test_list_checkpoints_without_directory(self, tmp_path: Path) -> None:
        assert ProgressStore(tmp_path / "none").list_checkpoints() == []
