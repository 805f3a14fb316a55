"""Persisted record of successful incremental work."""

from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Set

from buildtree.errors import RecordNotFoundError
from buildtree.logging import Logger

EXTERNAL_DIR = "_external"

_UNSAFE_SUFFIX_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_ESCAPED_CHARS = re.compile(r"[^A-Za-z0-9-]")


def _escape_char(match: re.Match) -> str:
    char = match.group(0)
    if char == "_":
        return "__"
    return "".join(f"_{byte:02x}" for byte in char.encode("utf-8"))


def suffix_for_task(task_name: str) -> str:
    """
    Encode a task name as a record suffix (no dots or path separators).

    "_" is the escape character: a literal underscore becomes "__" and any
    other unsafe character becomes "_" plus the hex of each UTF-8 byte, so
    distinct task names never share a suffix (``test.unit`` -> ``test_2eunit``,
    ``test_unit`` -> ``test__unit``).
    """
    return _ESCAPED_CHARS.sub(_escape_char, task_name)


@dataclass(frozen=True)
class DependencyKey:
    """
    Identity of one modification record.

    The same source file can carry independent records for different tasks
    (e.g. ``src/a.js.lint`` and ``src/a.js.compile``), so the key is the
    root-relative path plus a task-specific suffix.
    """

    path: str
    suffix: str

    def __post_init__(self):
        if not self.suffix or _UNSAFE_SUFFIX_CHARS.search(self.suffix):
            raise ValueError(f"Invalid dependency key suffix: {self.suffix!r}")

    @classmethod
    def for_file(cls, project_root: Path, file_path: Path, suffix: str) -> "DependencyKey":
        """
        Build a key for a file, encoding its path relative to the project root.

        Files outside the project root are keyed under ``_external/`` so that
        their records never escape the store directory.
        """
        root = Path(os.path.abspath(project_root))
        absolute = Path(os.path.abspath(project_root / file_path))
        try:
            relative = PurePosixPath(absolute.relative_to(root).as_posix())
        except ValueError:
            parts = [p for p in absolute.parts[1:] if p not in ("", "\\", "/")]
            drive = absolute.drive.rstrip(":\\/")
            relative = PurePosixPath(EXTERNAL_DIR, *([drive] if drive else []), *parts)
        return cls(path=str(relative), suffix=suffix)

    @property
    def record_name(self) -> str:
        return f"{self.path}.{self.suffix}"


@dataclass(frozen=True)
class ModificationRecord:
    """Marker stored after a successful unit of work, with the time it was written."""

    marker: str
    recorded_at: float


class ModificationStore:
    """
    Durable mapping from DependencyKey to ModificationRecord.

    Backed by one small file per key under ``<incremental_dir>/files/``. The
    record file's modification time is the record's timestamp. Deleting the
    directory is equivalent to marking everything stale.
    """

    FILES_DIR = "files"

    def __init__(self, incremental_dir: Path, logger: Optional[Logger] = None):
        """
        Initialize the store.

        Args:
        incremental_dir: Root directory for incremental state
        logger: Optional logger for diagnostic output
        """
        self.incremental_dir = Path(incremental_dir)
        self.logger = logger

    @property
    def files_dir(self) -> Path:
        return self.incremental_dir / self.FILES_DIR

    def record_path(self, key: DependencyKey) -> Path:
        return self.files_dir / PurePosixPath(key.record_name)

    def read(self, key: DependencyKey) -> ModificationRecord:
        """
        Read the record for a key.

        Raises:
        RecordNotFoundError: If no record exists for the key
        """
        path = self.record_path(key)
        try:
            marker = path.read_text()
            recorded_at = path.stat().st_mtime
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            raise RecordNotFoundError(f"No modification record for {key.record_name}")
        if self.logger:
            self.logger.trace(f"Read record {key.record_name} ({marker!r})")
        return ModificationRecord(marker=marker, recorded_at=recorded_at)

    def get(self, key: DependencyKey) -> ModificationRecord | None:
        """Get the record for a key, or None when absent."""
        try:
            return self.read(key)
        except RecordNotFoundError:
            return None

    def write(self, key: DependencyKey, marker: str) -> None:
        """
        Write (or overwrite) the record for a key, creating directories as needed.

        Rewriting a key always refreshes its timestamp, so the record is current
        after every successful run.
        """
        path = self.record_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(marker)
        if self.logger:
            self.logger.trace(f"Wrote record {key.record_name} ({marker!r})")

    def delete(self, key: DependencyKey) -> bool:
        """Delete the record for a key. Returns True if a record was removed."""
        path = self.record_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self) -> Iterator[DependencyKey]:
        """Iterate over every key that has a record."""
        if not self.files_dir.is_dir():
            return
        for path in sorted(self.files_dir.rglob("*")):
            if not path.is_file():
                continue
            name = path.relative_to(self.files_dir).as_posix()
            stem, dot, suffix = name.rpartition(".")
            if dot and stem and suffix and not _UNSAFE_SUFFIX_CHARS.search(suffix):
                yield DependencyKey(path=stem, suffix=suffix)

    def prune(self, valid_suffixes: Set[str]) -> list[DependencyKey]:
        """
        Remove records whose suffix is not in ``valid_suffixes``.

        Used to drop records of tasks that are no longer registered.

        Returns:
        The keys that were removed
        """
        removed = [key for key in self.keys() if key.suffix not in valid_suffixes]
        for key in removed:
            self.delete(key)

        if self.logger and removed:
            names = ", ".join(key.record_name for key in removed[:5])
            self.logger.trace(
                f"Pruned {len(removed)} stale record(s): {names}{'...' if len(removed) > 5 else ''}"
            )
        return removed

    def clear(self) -> bool:
        """
        Delete the whole store. Returns True if anything was removed.
        """
        if not self.incremental_dir.exists():
            return False
        shutil.rmtree(self.incremental_dir)
        if self.logger:
            self.logger.trace(f"Cleared incremental state at {self.incremental_dir}")
        return True

    def exists(self) -> bool:
        return self.incremental_dir.exists()
