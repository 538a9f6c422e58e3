"""Data models for image layers and layer comparison."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from .filetree import FileTree

LAYER_FORMAT = "{size:>7}  {command}"

_SIZE_UNITS = ["B", "kB", "MB", "GB", "TB"]


def format_size(size: int) -> str:
    """Format a byte count for display (e.g. "1.2 MB")."""
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1000 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1000
    return f"{size} B"


@dataclass
class Layer:
    """One content-addressable image layer."""

    id: str
    digest: str
    index: int
    size: int
    names: list[str] = field(default_factory=list)
    command: str = ""

    def __str__(self) -> str:
        return LAYER_FORMAT.format(size=format_size(self.size), command=self.command)

    def copy(self) -> "Layer":
        return replace(self, names=list(self.names))

    def with_index(self, index: int) -> "Layer":
        """Return a copy of this layer at a new position."""
        return replace(self, index=index, names=list(self.names))


@dataclass(frozen=True)
class Inefficiency:
    """A path whose content is paid for by more than one layer."""

    path: str
    cumulative_size: int
    occurrences: int


@dataclass
class AnalysisResult:
    """Layers of an image with their file trees and summary metrics."""

    layers: list[Layer]
    ref_trees: list["FileTree"]
    efficiency: float = 1.0
    size_bytes: int = 0
    wasted_bytes: int = 0
    inefficiencies: list[Inefficiency] = field(default_factory=list)
    image: str = ""


class CompareMode(Enum):
    """Whether a comparison spans one layer or everything since the anchor."""

    SINGLE_LAYER = "single-layer"
    ALL_LAYERS = "all-layers"


class CompareSide(Enum):
    """Which side of the current comparison a layer contributes to."""

    NONE = "none"
    BOTTOM = "bottom"
    TOP = "top"


class CompareIndexes(NamedTuple):
    """Layer boundaries of the "before" (bottom) and "after" (top) trees."""

    bottom_start: int
    bottom_stop: int
    top_start: int
    top_stop: int


@dataclass(frozen=True)
class LayerSelection:
    """Event emitted whenever the selected layer or compare mode changes.

    ``layer`` is a copy; changing it does not affect the session.
    """

    layer: Layer
    index: int
    indexes: CompareIndexes

    @property
    def bottom_start(self) -> int:
        return self.indexes.bottom_start

    @property
    def bottom_stop(self) -> int:
        return self.indexes.bottom_stop

    @property
    def top_start(self) -> int:
        return self.indexes.top_start

    @property
    def top_stop(self) -> int:
        return self.indexes.top_stop


@dataclass
class LoadedImage:
    """An analyzed image together with its config labels."""

    analysis: AnalysisResult
    labels: dict[str, str] = field(default_factory=dict)
    repo_tags: list[str] = field(default_factory=list)
