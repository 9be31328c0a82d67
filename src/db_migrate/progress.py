"""Crash-resumable progress checkpoints.

One JSON file per table records how far that table's transfer got.  The
file is rewritten after every committed batch and removed when the table
finishes, so a leftover file means "interrupted, resumable".

Usage:
    from db_migrate.progress import ProgressStore

    store = ProgressStore(Path("logs"))
    store.save("users", cursor=2000, total=2500)
    checkpoint = store.load("users")   # ProgressCheckpoint or None
    store.clear("users")
"""

import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator

from db_migrate.errors import CheckpointError

logger = logging.getLogger(__name__)

_SUFFIX = "_progress.json"
_SEPARATORS = ("/", "\\", "\0")


class ProgressCheckpoint(BaseModel):
    """Last committed offset of a table transfer.

    Example:
        >>> ProgressCheckpoint(table_name="users", cursor=1000, total_count=2500).cursor
        1000
    """

    table_name: str
    cursor: int = Field(ge=0)
    total_count: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def _cursor_within_total(self) -> "ProgressCheckpoint":
        if self.cursor > self.total_count:
            raise ValueError(
                f"cursor {self.cursor} exceeds total_count {self.total_count}"
            )
        return self


class ProgressStore:
    """File-backed checkpoint store, one JSON record per table.

    Args:
        directory: Directory holding ``<table>_progress.json`` files.
            Created on first save.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, table: str) -> Path:
        """Checkpoint file path for a table.

        Raises:
            CheckpointError: If the name would resolve outside the directory.
        """
        if not table or table in (".", "..") or any(sep in table for sep in _SEPARATORS):
            raise CheckpointError(f"Invalid table name for a checkpoint: {table!r}")
        return self._directory / f"{table}{_SUFFIX}"

    def save(self, table: str, cursor: int, total: int) -> ProgressCheckpoint:
        """Durably overwrite the checkpoint for ``table``.

        Writes to a temp file in the same directory, then renames it over
        the old record so a crash never leaves a half-written file.
        """
        path = self.path_for(table)
        checkpoint = ProgressCheckpoint(table_name=table, cursor=cursor, total_count=total)

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{table}", suffix=".tmp")
        except OSError as e:
            raise CheckpointError(f"Could not write checkpoint for {table}: {e}") from e

        try:
            with os.fdopen(fd, "w") as f:
                f.write(checkpoint.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CheckpointError(f"Could not write checkpoint for {table}: {e}") from e
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        return checkpoint

    def load(self, table: str) -> ProgressCheckpoint | None:
        """Return the checkpoint for ``table``, or ``None``.

        Missing, unreadable, malformed, or foreign records all count as
        "no checkpoint".
        """
        checkpoint = self._read(self.path_for(table))
        if checkpoint is None or checkpoint.table_name != table:
            return None
        return checkpoint

    def clear(self, table: str) -> None:
        """Delete the checkpoint for ``table``; absence is not an error."""
        try:
            self.path_for(table).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove checkpoint for %s: %s", table, e, extra={"table": table})

    def list_checkpoints(self) -> list[ProgressCheckpoint]:
        """All readable checkpoints in the directory, ordered by table name."""
        if not self._directory.is_dir():
            return []
        checkpoints = []
        for path in sorted(self._directory.glob(f"*{_SUFFIX}")):
            checkpoint = self._read(path)
            if checkpoint is not None:
                checkpoints.append(checkpoint)
        return checkpoints

    def _read(self, path: Path) -> ProgressCheckpoint | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable checkpoint %s: %s", path, e)
            return None

        try:
            return ProgressCheckpoint.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed checkpoint %s: %s", path, e)
            return None
