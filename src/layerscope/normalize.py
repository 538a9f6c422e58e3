"""Collapse a buildpack base stack into a single logical layer."""

import logging
from dataclasses import replace

from .exceptions import BaseLayerNotFoundError, LengthMismatchError
from .filetree import FileTree
from .models import AnalysisResult, Layer

logger = logging.getLogger(__name__)


def normalize_stack(
    layers: list[Layer],
    trees: list[FileTree],
    base_top_digest: str,
    *,
    strict: bool = True,
) -> tuple[list[Layer], list[FileTree]]:
    """Merge every layer up to the base image top layer into one layer.

    Layers after the base top layer are passed through one-for-one. The merged
    layer keeps the first layer's id and digest, carries the summed size and
    the names of every folded layer, and owns a stacked copy of the folded
    trees. Inputs are not mutated. Output indices are renumbered from 0.

    Args:
        layers: Layers in build order
        trees: File trees aligned 1:1 with ``layers``
        base_top_digest: Digest of the last layer belonging to the base image
        strict: Fail when ``base_top_digest`` is not among ``layers``. When
            False every layer is folded into a single merged layer.

    Returns:
        Tuple of (layers, trees), still aligned 1:1

    Raises:
        LengthMismatchError: If ``layers`` and ``trees`` differ in length
        BaseLayerNotFoundError: If strict and the digest is not found
        TreeMergeError: If a base tree cannot be stacked onto the merged tree
    """
    if len(layers) != len(trees):
        raise LengthMismatchError(len(layers), len(trees))

    if not layers:
        return [], []

    if strict and not any(layer.digest == base_top_digest for layer in layers):
        raise BaseLayerNotFoundError(base_top_digest)

    new_layers: list[Layer] = []
    new_trees: list[FileTree] = []

    merged_layer = layers[0].with_index(0)
    merged_tree = trees[0].copy()
    in_stack = layers[0].digest != base_top_digest
    if not in_stack:
        new_layers.append(merged_layer)
        new_trees.append(merged_tree)

    for layer, tree in zip(layers[1:], trees[1:]):
        if in_stack:
            merged_layer.size += layer.size
            merged_layer.names.extend(n for n in layer.names if n not in merged_layer.names)
            merged_tree.stack(tree)
            if layer.digest == base_top_digest:
                new_layers.append(merged_layer)
                new_trees.append(merged_tree)
                in_stack = False
            continue

        new_layers.append(layer.with_index(len(new_layers)))
        new_trees.append(tree)

    if in_stack:
        # only reachable when not strict: the digest never matched
        logger.warning(
            "base top layer %s not found, folded all %d layers", base_top_digest, len(layers)
        )
        new_layers.append(merged_layer)
        new_trees.append(merged_tree)

    return new_layers, new_trees


def collapse_base_stack(
    analysis: AnalysisResult, base_top_digest: str, *, strict: bool = True
) -> AnalysisResult:
    """Return ``analysis`` with its base stack folded into the first layer.

    Summary metrics (efficiency, sizes, inefficiencies) are carried over
    unchanged.
    """
    layers, trees = normalize_stack(
        analysis.layers, analysis.ref_trees, base_top_digest, strict=strict
    )
    folded = len(analysis.layers) - len(layers) + 1 if layers else 0
    logger.info(
        "collapsed %d base layer(s) of %s into one (%d layers remain)",
        folded,
        analysis.image or "image",
        len(layers),
    )
    return replace(analysis, layers=layers, ref_trees=trees)
