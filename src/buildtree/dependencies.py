"""Dependency-file resolution and freshness checks for incremental tasks."""

from __future__ import annotations

import asyncio
import glob
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from buildtree.freshness import FreshnessPolicy, MtimeFreshnessPolicy
from buildtree.graph import DependencyDescriptor, Task
from buildtree.logging import Logger
from buildtree.state import DependencyKey, ModificationStore, suffix_for_task


@dataclass
class FreshnessReport:
    """Result of checking every file an incremental task depends on."""

    task_name: str
    files: list[Path] = field(default_factory=list)
    stale_files: list[Path] = field(default_factory=list)

    @property
    def fresh(self) -> bool:
        # A task with nothing to watch can never be proven unchanged
        return bool(self.files) and not self.stale_files

    @property
    def reason(self) -> str:
        if not self.files:
            return "no_dependencies"
        if self.stale_files:
            return "inputs_changed"
        return "fresh"


class DependencyResolver:
    """
    Resolves an incremental task's dependency descriptors to files and answers
    "has anything changed since the last success".
    """

    def __init__(
        self,
        project_root: Path,
        store: ModificationStore,
        policy: FreshnessPolicy | None = None,
        logger: Optional[Logger] = None,
    ):
        self.project_root = Path(project_root)
        self.store = store
        self.policy = policy or MtimeFreshnessPolicy()
        self.logger = logger

    def resolve(self, task: Task) -> list[Path]:
        """Expand a task's dependency descriptors to concrete files.

        Glob patterns contribute matching files only. Plain paths are kept even
        when missing, so a declared file that disappears reads as stale.

        Returns:
            Absolute paths in declaration order, without duplicates
        """
        files: list[Path] = []
        seen: set[Path] = set()
        for descriptor in task.dependency_files:
            for path in self._expand(descriptor):
                if path not in seen:
                    seen.add(path)
                    files.append(path)
        if self.logger:
            self.logger.trace(f"Resolved {len(files)} dependency file(s) for '{task.name}'")
        return files

    def _expand(self, descriptor: DependencyDescriptor) -> Iterable[Path]:
        if callable(descriptor):
            for item in descriptor():
                yield from self._expand(item)
            return

        pattern = str(descriptor)
        if glob.has_magic(pattern):
            if Path(pattern).is_absolute():
                matches = glob.glob(pattern, recursive=True)
            else:
                matches = glob.glob(pattern, root_dir=self.project_root, recursive=True)
            for match in sorted(matches):
                path = self._absolute(match)
                if path.is_file():
                    yield path
        else:
            yield self._absolute(pattern)

    def _absolute(self, path: str | Path) -> Path:
        path = Path(path)
        if path.is_absolute():
            return path
        return self.project_root / path

    def dependency_key(self, path: Path, suffix: str) -> DependencyKey:
        """Build the store key for a file and task-specific suffix."""
        return DependencyKey.for_file(self.project_root, Path(path), suffix)

    def is_modified(self, source_file: Path, key: DependencyKey) -> bool:
        """Check whether a file changed since the record for ``key`` was written.

        Fails open: a missing record, a missing file or an unreadable file all
        count as modified. Never raises for I/O problems.
        """
        source_file = self._absolute(source_file)
        try:
            modified = self.policy.is_modified(source_file, self.store.get(key))
        except OSError as e:
            if self.logger:
                self.logger.debug(f"Treating {source_file} as modified: {e}")
            return True
        if self.logger:
            self.logger.trace(
                f"{key.record_name}: {'modified' if modified else 'unmodified'}"
            )
        return modified

    async def is_modified_async(self, source_file: Path, key: DependencyKey) -> bool:
        return await asyncio.to_thread(self.is_modified, source_file, key)

    async def check(self, task: Task, files: list[Path] | None = None) -> FreshnessReport:
        """Check every dependency file of an incremental task.

        Files are checked concurrently; the task is fresh only once every check
        has completed and none found a modification.
        """
        if files is None:
            files = self.resolve(task)
        suffix = suffix_for_task(task.name)
        results = await asyncio.gather(
            *(self.is_modified_async(path, self.dependency_key(path, suffix)) for path in files)
        )
        stale = [path for path, modified in zip(files, results) if modified]
        report = FreshnessReport(task_name=task.name, files=list(files), stale_files=stale)
        if self.logger:
            self.logger.debug(
                f"Task '{task.name}': {report.reason} "
                f"({len(stale)} of {len(files)} file(s) stale)"
            )
        return report

    def record(self, path: Path, key: DependencyKey) -> bool:
        """Write the record for one file. Returns False if the file is missing."""
        path = self._absolute(path)
        if not path.is_file():
            return False
        try:
            marker = self.policy.marker_for(path)
        except FileNotFoundError:
            return False
        self.store.write(key, marker)
        return True

    def record_success(self, task: Task) -> int:
        """Record every existing dependency file of a task that just succeeded.

        Descriptors are re-resolved so files created by the task body are
        included.

        Returns:
            Number of records written
        """
        suffix = suffix_for_task(task.name)
        written = 0
        for path in self.resolve(task):
            if self.record(path, self.dependency_key(path, suffix)):
                written += 1
        if self.logger:
            self.logger.trace(f"Recorded {written} file(s) for '{task.name}'")
        return written
