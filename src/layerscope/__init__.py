"""layerscope - browse and compare the layers of container images."""

__version__ = "0.1.0"

from .compare import TreeComparer, compute_compare_indexes
from .config import SessionConfig
from .exceptions import (
    BaseLayerNotFoundError,
    EmptyLayerSetError,
    IndexOutOfRangeError,
    LayerscopeError,
    LayerSetError,
    LengthMismatchError,
    ListenerError,
    RegistryError,
    TarReadError,
    TreeMergeError,
    ValidationError,
)
from .filetree import DiffType, FileInfo, FileTree
from .models import (
    AnalysisResult,
    CompareIndexes,
    CompareMode,
    CompareSide,
    Layer,
    LayerSelection,
)
from .normalize import collapse_base_stack, normalize_stack
from .session import Session, build_session, open_archive, open_registry_image
from .state import LayerCompareState

__all__ = [
    "AnalysisResult",
    "BaseLayerNotFoundError",
    "CompareIndexes",
    "CompareMode",
    "CompareSide",
    "DiffType",
    "EmptyLayerSetError",
    "FileInfo",
    "FileTree",
    "IndexOutOfRangeError",
    "Layer",
    "LayerCompareState",
    "LayerSelection",
    "LayerSetError",
    "LayerscopeError",
    "LengthMismatchError",
    "ListenerError",
    "RegistryError",
    "Session",
    "SessionConfig",
    "TarReadError",
    "TreeComparer",
    "TreeMergeError",
    "ValidationError",
    "build_session",
    "collapse_base_stack",
    "compute_compare_indexes",
    "normalize_stack",
    "open_archive",
    "open_registry_image",
]
