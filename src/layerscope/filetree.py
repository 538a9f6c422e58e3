"""File tree snapshots for a single image layer.

A ``FileTree`` holds the entries one layer adds or replaces, plus the paths it
deletes through whiteout markers. Trees are combined with ``stack``, which
applies an upper layer on top of the receiving tree the same way an overlay
filesystem would, and compared with ``compare``.
"""

import logging
import posixpath
import tarfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, Iterator, Optional, Union

from .exceptions import TarReadError, TreeMergeError
from .models import Inefficiency

logger = logging.getLogger(__name__)

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT = ".wh..wh..opq"
ROOT = "/"


class DiffType(Enum):
    """How a path differs between two trees."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class FileInfo:
    """Metadata for one path in a layer."""

    path: str
    size: int = 0
    mode: int = 0o644
    is_dir: bool = False
    link_target: str = ""
    # created to hold a child, not listed by the layer itself
    implicit: bool = field(default=False, compare=False)

    @property
    def is_symlink(self) -> bool:
        return bool(self.link_target)

    def signature(self) -> tuple[int, int, bool, str]:
        return (self.size, self.mode, self.is_dir, self.link_target)


@dataclass(frozen=True)
class PathError:
    """A path that could not be applied while stacking; not fatal."""

    path: str
    action: str
    reason: str


def normalize_path(name: str) -> str:
    """Turn a tar member name into an absolute, normalized path."""
    return posixpath.normpath(ROOT + name.lstrip("/"))


def _ancestors(path: str) -> Iterator[str]:
    parent = posixpath.dirname(path)
    while parent != ROOT:
        yield parent
        parent = posixpath.dirname(parent)


def _is_under(path: str, directory: str) -> bool:
    return path.startswith(directory.rstrip("/") + "/")


def _implicit_dir(path: str) -> "FileInfo":
    return FileInfo(path, mode=0o755, is_dir=True, implicit=True)


def _blocked(entries: dict[str, "FileInfo"], path: str) -> bool:
    """Whether an ancestor of ``path`` is a regular file."""
    for parent in _ancestors(path):
        info = entries.get(parent)
        if info is not None and not info.is_dir and not info.is_symlink:
            return True
    return False


class FileTree:
    """Filesystem state contributed by one layer (or by a stack of layers)."""

    def __init__(
        self,
        entries: Iterable[FileInfo] = (),
        whiteouts: Iterable[str] = (),
        opaque_dirs: Iterable[str] = (),
    ) -> None:
        self._entries: dict[str, FileInfo] = {}
        self.whiteouts: set[str] = {normalize_path(p) for p in whiteouts}
        self.opaque_dirs: set[str] = {normalize_path(p) for p in opaque_dirs}
        for info in entries:
            self.add(info)

    @classmethod
    def from_tar(cls, source: Union[str, Path, IO[bytes]]) -> "FileTree":
        """Build a tree from a layer tar (plain or compressed).

        Args:
            source: Path to the layer tar or a readable binary file object

        Returns:
            FileTree describing the layer

        Raises:
            TarReadError: If the layer cannot be read
        """
        try:
            if isinstance(source, (str, Path)):
                tar = tarfile.open(source, "r:*")
            else:
                tar = tarfile.open(fileobj=source, mode="r:*")
            with tar:
                return cls.from_members(tar.getmembers())
        except (tarfile.TarError, OSError) as e:
            raise TarReadError(f"Failed to read layer tar: {e}") from e

    @classmethod
    def from_members(cls, members: Iterable[tarfile.TarInfo]) -> "FileTree":
        tree = cls()
        for member in members:
            path = normalize_path(member.name)
            if path == ROOT:
                continue
            directory, base = posixpath.split(path)
            if base == OPAQUE_WHITEOUT:
                tree.opaque_dirs.add(directory)
            elif base.startswith(WHITEOUT_PREFIX):
                tree.whiteouts.add(posixpath.join(directory, base[len(WHITEOUT_PREFIX) :]))
            else:
                tree.add(
                    FileInfo(
                        path=path,
                        size=member.size if member.isreg() else 0,
                        mode=member.mode,
                        is_dir=member.isdir(),
                        link_target=member.linkname if member.issym() else "",
                    )
                )
        return tree

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._entries

    def __iter__(self) -> Iterator[FileInfo]:
        for path in sorted(self._entries):
            yield self._entries[path]

    def get(self, path: str) -> Optional[FileInfo]:
        return self._entries.get(normalize_path(path))

    def paths(self) -> list[str]:
        return sorted(self._entries)

    @property
    def size(self) -> int:
        """Total size of the regular files in the tree."""
        return sum(info.size for info in self._entries.values() if not info.is_dir)

    def add(self, info: FileInfo) -> None:
        """Add an entry, creating any missing parent directories."""
        path = normalize_path(info.path)
        if path != info.path:
            info = replace(info, path=path)
        for parent in _ancestors(path):
            if parent not in self._entries:
                self._entries[parent] = _implicit_dir(parent)
        self._entries[path] = info

    def copy(self) -> "FileTree":
        tree = FileTree()
        tree._entries = dict(self._entries)
        tree.whiteouts = set(self.whiteouts)
        tree.opaque_dirs = set(self.opaque_dirs)
        return tree

    def stack(self, upper: "FileTree") -> list[PathError]:
        """Apply ``upper`` on top of this tree, in place.

        Opaque directories and whiteouts are applied first, then the upper
        entries. A whiteout for a path that does not exist is reported in the
        returned list and otherwise ignored.

        Args:
            upper: Tree of the layer above

        Returns:
            Paths that could not be applied

        Raises:
            TreeMergeError: If an upper entry would live beneath a regular
                file the upper layer does not replace; the tree is left
                unchanged
        """
        entries = dict(self._entries)
        failed: list[PathError] = []

        for directory in sorted(upper.opaque_dirs):
            for path in [p for p in entries if _is_under(p, directory)]:
                del entries[path]

        for target in sorted(upper.whiteouts):
            if target not in entries:
                failed.append(PathError(target, "remove", "path not found"))
                continue
            for path in [p for p in entries if p == target or _is_under(p, target)]:
                del entries[path]

        conflicts = []
        for path in upper.paths():
            info = upper._entries[path]
            existing = entries.get(path)
            if _blocked(entries, path):
                conflicts.append(path)
                continue
            if info.implicit and existing is not None:
                if existing.is_dir or existing.is_symlink:
                    continue
                # the upper layer expects a directory where a file still exists
                conflicts.append(path)
                continue
            if existing is not None and existing.is_dir and not info.is_dir:
                for child in [p for p in entries if _is_under(p, path)]:
                    del entries[child]
            entries[path] = info

        if conflicts:
            raise TreeMergeError(
                f"cannot stack {len(conflicts)} path(s) beneath a regular file: "
                + ", ".join(conflicts[:5]),
                paths=conflicts,
            )

        self._entries = entries
        if failed:
            logger.debug("stacking skipped %d path(s)", len(failed))
        return failed

    def compare(self, upper: "FileTree") -> dict[str, DiffType]:
        """Diff this tree (before) against ``upper`` (after)."""
        changes: dict[str, DiffType] = {}
        for path in sorted(set(self._entries) | set(upper._entries)):
            before = self._entries.get(path)
            after = upper._entries.get(path)
            if before is None:
                changes[path] = DiffType.ADDED
            elif after is None:
                changes[path] = DiffType.REMOVED
            elif before.signature() != after.signature():
                changes[path] = DiffType.MODIFIED
        return changes


def stack_range(trees: list[FileTree], start: int, stop: int) -> FileTree:
    """Stack ``trees[start..stop]`` (inclusive) into a new tree."""
    tree = trees[start].copy()
    for upper in trees[start + 1 : stop + 1]:
        tree.stack(upper)
    tree.whiteouts.clear()
    tree.opaque_dirs.clear()
    return tree


def analyze_efficiency(
    trees: list[FileTree],
) -> tuple[float, int, list[Inefficiency]]:
    """Score how much of the image is spent on files later replaced or removed.

    Every regular file or whiteout counts towards the cumulative size of its
    path. A path seen in more than one layer is an inefficiency; the score is
    the ratio of the smallest size each path was seen with to the total size
    discovered across all layers.

    Returns:
        Tuple of (efficiency score, wasted bytes, inefficiencies sorted by
        cumulative size, largest first)
    """
    current: dict[str, int] = {}
    cumulative: dict[str, int] = {}
    minimum: dict[str, int] = {}
    occurrences: dict[str, int] = {}

    def record(path: str, size: int) -> None:
        cumulative[path] = cumulative.get(path, 0) + size
        minimum[path] = min(minimum.get(path, size), size)
        occurrences[path] = occurrences.get(path, 0) + 1

    for tree in trees:
        for target in sorted(tree.whiteouts):
            removed = [p for p in current if p == target or _is_under(p, target)]
            record(target, sum(current[p] for p in removed))
            for path in removed:
                del current[path]
        for info in tree:
            if info.is_dir:
                continue
            current[info.path] = info.size
            record(info.path, info.size)

    discovered = sum(cumulative.values())
    score = sum(minimum.values()) / discovered if discovered else 1.0

    inefficiencies = [
        Inefficiency(path, cumulative[path], count)
        for path, count in occurrences.items()
        if count > 1
    ]
    inefficiencies.sort(key=lambda item: (-item.cumulative_size, item.path))
    wasted = sum(item.cumulative_size for item in inefficiencies)
    return score, wasted, inefficiencies
