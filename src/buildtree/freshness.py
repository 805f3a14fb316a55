"""Freshness policies: decide whether a watched file changed since its record."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from buildtree.hasher import hash_file
from buildtree.state import ModificationRecord

__all__ = [
    "FreshnessPolicy",
    "FreshnessPolicyTypes",
    "MtimeFreshnessPolicy",
    "ContentHashFreshnessPolicy",
    "make_freshness_policy",
]


class FreshnessPolicyTypes(Enum):
    MTIME = "mtime"
    HASH = "hash"


class FreshnessPolicy(ABC):
    """
    Strategy for comparing a watched file against its stored record.
    """

    @abstractmethod
    def marker_for(self, path: Path) -> str:
        """
        Compute the marker to store after a successful run.

        Raises:
        OSError: If the file cannot be read
        """
        ...

    @abstractmethod
    def is_modified(self, path: Path, record: ModificationRecord | None) -> bool:
        """
        Decide whether the file changed since ``record`` was written.

        Missing records and missing files always count as modified.

        Raises:
        OSError: If the file exists but cannot be inspected
        """
        ...


class MtimeFreshnessPolicy(FreshnessPolicy):
    """
    Default policy: a file is modified when its mtime is newer than the record.

    O(1) per file with no reads. It misses changes that do not update mtime and
    rebuilds on touch-only changes.
    """

    MARKER = "ok"

    def marker_for(self, path: Path) -> str:
        return self.MARKER

    def is_modified(self, path: Path, record: ModificationRecord | None) -> bool:
        if record is None:
            return True
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return True
        return mtime > record.recorded_at


class ContentHashFreshnessPolicy(FreshnessPolicy):
    """
    A file is modified when the sha256 of its content differs from the stored marker.
    """

    def marker_for(self, path: Path) -> str:
        return hash_file(path)

    def is_modified(self, path: Path, record: ModificationRecord | None) -> bool:
        if record is None:
            return True
        try:
            return hash_file(path) != record.marker
        except FileNotFoundError:
            return True


def make_freshness_policy(policy_type: FreshnessPolicyTypes | str) -> FreshnessPolicy:
    """
    Factory function for creating FreshnessPolicy instances.

    Raises:
    ValueError: If an invalid policy type is provided
    """
    match FreshnessPolicyTypes(policy_type):
        case FreshnessPolicyTypes.MTIME:
            return MtimeFreshnessPolicy()
        case FreshnessPolicyTypes.HASH:
            return ContentHashFreshnessPolicy()
        case _:
            raise ValueError(f"Invalid freshness policy: {policy_type}")
