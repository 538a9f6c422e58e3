"""Interactive layer browsing session.

A ``Session`` is built once per loaded image and handed to whatever renders
it. Building a session normalizes buildpack images (collapsing the base
stack), so any fatal layer set error surfaces before a session exists.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .cnb import CNBMetadata, parse_cnb_metadata
from .compare import TreeComparer
from .config import SessionConfig
from .core.registry_client import load_registry_image
from .details import ImageDetails, LayerDetails, build_details
from .exceptions import LengthMismatchError
from .filetree import DiffType
from .models import AnalysisResult, LayerSelection, LoadedImage
from .normalize import collapse_base_stack
from .reference import parse_repository_tag
from .state import LayerCompareState
from .tar.reader import load_docker_archive

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """State and collaborators for browsing one image."""

    analysis: AnalysisResult
    state: LayerCompareState
    comparer: TreeComparer
    details: ImageDetails
    config: SessionConfig
    metadata: Optional[CNBMetadata] = None

    def selection(self) -> LayerSelection:
        return self.state.selection()

    def changes(self) -> dict[str, DiffType]:
        """Paths changed between the bottom and top trees of the selection."""
        return self.comparer.compare(self.state.compare_indexes)

    def layer_details(self) -> LayerDetails:
        return self.details.layer_details(self.state.current_layer)


def build_session(
    analysis: AnalysisResult,
    labels: Optional[dict[str, str]] = None,
    config: Optional[SessionConfig] = None,
) -> Session:
    """Create a session for an analyzed image.

    Args:
        analysis: Layers, trees and metrics of the image
        labels: Image config labels; buildpack metadata found here enables
            base stack collapsing and buildpack details
        config: Session options (defaults apply when omitted)

    Raises:
        LengthMismatchError: If layers and trees differ in length
        EmptyLayerSetError: If the image has no layers
        BaseLayerNotFoundError: If the buildpack base top layer is missing
        TreeMergeError: If the base stack trees cannot be stacked
        ValidationError: If buildpack labels are malformed
    """
    config = config or SessionConfig()

    if len(analysis.layers) != len(analysis.ref_trees):
        raise LengthMismatchError(len(analysis.layers), len(analysis.ref_trees))

    metadata = parse_cnb_metadata(labels)
    if metadata is not None and config.collapse_base_stack:
        analysis = collapse_base_stack(
            analysis, metadata.top_layer, strict=config.strict_base_stack
        )

    state = LayerCompareState(analysis.layers, config.compare_mode)
    session = Session(
        analysis=analysis,
        state=state,
        comparer=TreeComparer(analysis.ref_trees),
        details=build_details(analysis, metadata),
        config=config,
        metadata=metadata,
    )
    logger.info(
        "session for %s: %d layers, %s details",
        analysis.image or "image",
        len(analysis.layers),
        "buildpack" if metadata else "generic",
    )
    return session


def session_from_loaded(loaded: LoadedImage, config: Optional[SessionConfig] = None) -> Session:
    return build_session(loaded.analysis, loaded.labels, config)


async def open_archive(tar_path: str, config: Optional[SessionConfig] = None) -> Session:
    """Load a docker-save archive and build a session for it."""
    loaded = await load_docker_archive(tar_path)
    return session_from_loaded(loaded, config)


async def open_registry_image(
    registry_url: str, image: str, config: Optional[SessionConfig] = None
) -> Session:
    """Load ``image`` ("repo:tag" or "repo@digest") from a registry."""
    config = config or SessionConfig()
    repository, reference = parse_repository_tag(image)
    loaded = await load_registry_image(
        registry_url,
        repository,
        reference,
        timeout=config.registry_timeout,
        cache_dir=config.blob_cache_dir,
    )
    return session_from_loaded(loaded, config)
