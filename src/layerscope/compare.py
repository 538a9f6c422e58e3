"""Layer comparison boundaries and cached tree comparisons."""

import logging
from typing import Iterator

from .exceptions import IndexOutOfRangeError
from .filetree import DiffType, FileTree, stack_range
from .models import CompareIndexes, CompareMode

logger = logging.getLogger(__name__)


def compute_compare_indexes(
    selected_index: int, anchor_index: int, mode: CompareMode
) -> CompareIndexes:
    """Determine the layer boundaries to use for a comparison.

    The bottom range is the tree state before the change of interest and the
    top range the state after it. ``top_stop`` is always the selected layer and
    ``bottom_start`` always the anchor.

    Args:
        selected_index: Currently selected layer
        anchor_index: Layer where aggregated comparisons start
        mode: Single layer or aggregated comparison

    Returns:
        CompareIndexes(bottom_start, bottom_stop, top_start, top_stop), all
        non-negative with ``top_start <= top_stop``

    Raises:
        IndexOutOfRangeError: If the anchor is negative or above the selection
    """
    if not 0 <= anchor_index <= selected_index:
        raise IndexOutOfRangeError(anchor_index, selected_index + 1)
    # equality first, otherwise single layer mode would yield bottom_stop = anchor - 1
    if selected_index == anchor_index:
        return CompareIndexes(anchor_index, selected_index, selected_index, selected_index)
    if mode is CompareMode.SINGLE_LAYER:
        return CompareIndexes(anchor_index, selected_index - 1, selected_index, selected_index)
    return CompareIndexes(anchor_index, anchor_index, anchor_index + 1, selected_index)


class TreeComparer:
    """Build and cache the diff for a set of compare indexes.

    The bottom tree is ``bottom_start..bottom_stop`` stacked together. The top
    tree is the bottom tree with ``top_start..top_stop`` stacked onto it, i.e.
    the cumulative state after the selected layer.
    """

    def __init__(self, trees: list[FileTree]) -> None:
        self.trees = trees
        self._cache: dict[CompareIndexes, dict[str, DiffType]] = {}

    def build_tree(self, start: int, stop: int) -> FileTree:
        return stack_range(self.trees, start, stop)

    def build_top_tree(self, bottom: FileTree, indexes: CompareIndexes) -> FileTree:
        top = bottom.copy()
        # layers already in the bottom tree are not applied twice
        for upper in self.trees[max(indexes.top_start, indexes.bottom_stop + 1) : indexes.top_stop + 1]:
            top.stack(upper)
        return top

    def compare(self, indexes: CompareIndexes) -> dict[str, DiffType]:
        if indexes not in self._cache:
            logger.debug("comparing layers %s", indexes)
            bottom = self.build_tree(indexes.bottom_start, indexes.bottom_stop)
            top = self.build_top_tree(bottom, indexes)
            self._cache[indexes] = bottom.compare(top)
        return self._cache[indexes]

    def clear(self) -> None:
        self._cache.clear()

    def natural_indexes(self) -> Iterator[CompareIndexes]:
        """Every key reachable in single layer mode with the anchor at 0."""
        for selected in range(len(self.trees)):
            yield compute_compare_indexes(selected, 0, CompareMode.SINGLE_LAYER)

    def aggregated_indexes(self) -> Iterator[CompareIndexes]:
        """Every key reachable in aggregated mode with the anchor at 0."""
        for selected in range(len(self.trees)):
            yield compute_compare_indexes(selected, 0, CompareMode.ALL_LAYERS)

    def build_cache(self) -> None:
        for indexes in self.natural_indexes():
            self.compare(indexes)
        for indexes in self.aggregated_indexes():
            self.compare(indexes)
