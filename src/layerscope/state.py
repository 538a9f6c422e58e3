"""Layer selection and comparison state for one interactive session."""

import logging
from typing import Callable, Sequence

from .compare import compute_compare_indexes
from .exceptions import EmptyLayerSetError, IndexOutOfRangeError, ListenerError
from .models import CompareIndexes, CompareMode, CompareSide, Layer, LayerSelection

logger = logging.getLogger(__name__)

LayerChangeListener = Callable[[LayerSelection], None]


class LayerCompareState:
    """Selected layer, compare anchor and compare mode over a layer set.

    Every mutation re-computes the compare indexes and notifies listeners, in
    the order they were added, with a ``LayerSelection``. If a listener raises,
    no further listeners are called and a ``ListenerError`` is raised from the
    mutating call. The mutation itself has already been applied at that point
    and is not rolled back.
    """

    def __init__(
        self,
        layers: Sequence[Layer],
        compare_mode: CompareMode = CompareMode.SINGLE_LAYER,
    ) -> None:
        if not layers:
            raise EmptyLayerSetError()
        self._layers = tuple(layers)
        self._selected_index = 0
        self._compare_anchor_index = 0
        self._compare_mode = compare_mode
        self._listeners: list[LayerChangeListener] = []

    @property
    def layers(self) -> tuple[Layer, ...]:
        return self._layers

    @property
    def selected_index(self) -> int:
        return self._selected_index

    @property
    def compare_anchor_index(self) -> int:
        return self._compare_anchor_index

    @property
    def compare_mode(self) -> CompareMode:
        return self._compare_mode

    @property
    def current_layer(self) -> Layer:
        return self._layers[self._selected_index]

    @property
    def compare_indexes(self) -> CompareIndexes:
        return compute_compare_indexes(
            self._selected_index, self._compare_anchor_index, self._compare_mode
        )

    def selection(self) -> LayerSelection:
        return LayerSelection(
            layer=self.current_layer.copy(),
            index=self._selected_index,
            indexes=self.compare_indexes,
        )

    def add_listener(self, *listeners: LayerChangeListener) -> None:
        self._listeners.extend(listeners)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._layers):
            raise IndexOutOfRangeError(index, len(self._layers))

    def set_selected_index(self, index: int) -> LayerSelection:
        """Select a layer and notify listeners.

        Selecting a layer below the compare anchor moves the anchor down to
        the selection, so the anchor never sits above the selected layer.

        Raises:
            IndexOutOfRangeError: If ``index`` is outside the layer set; the
                selection is left unchanged
            ListenerError: If a listener fails
        """
        self._check_index(index)
        self._selected_index = index
        if index < self._compare_anchor_index:
            logger.debug("compare anchor moved down to layer %d", index)
            self._compare_anchor_index = index
        logger.debug("selected layer %d", index)
        return self._notify()

    def set_compare_mode(self, mode: CompareMode) -> LayerSelection:
        """Switch between single layer and aggregated comparison."""
        self._compare_mode = mode
        logger.debug("compare mode %s", mode.value)
        return self._notify()

    def set_compare_anchor_index(self, index: int) -> LayerSelection:
        """Move the layer aggregated comparisons start from.

        Raises:
            IndexOutOfRangeError: If ``index`` is negative or above the
                selected layer; the anchor is left unchanged
            ListenerError: If a listener fails
        """
        if not 0 <= index <= self._selected_index:
            raise IndexOutOfRangeError(index, self._selected_index + 1)
        self._compare_anchor_index = index
        logger.debug("compare anchor at layer %d", index)
        return self._notify()

    def cursor_down(self) -> bool:
        """Select the next (higher) layer; returns False at the last layer."""
        if self._selected_index + 1 >= len(self._layers):
            return False
        self.set_selected_index(self._selected_index + 1)
        return True

    def cursor_up(self) -> bool:
        """Select the previous (lower) layer; returns False at the first layer."""
        if self._selected_index <= 0:
            return False
        self.set_selected_index(self._selected_index - 1)
        return True

    def page_down(self, step: int) -> bool:
        target = min(self._selected_index + step, len(self._layers) - 1)
        if step <= 0 or target == self._selected_index:
            return False
        self.set_selected_index(target)
        return True

    def page_up(self, step: int) -> bool:
        target = max(self._selected_index - step, 0)
        if step <= 0 or target == self._selected_index:
            return False
        self.set_selected_index(target)
        return True

    def compare_side(self, index: int) -> CompareSide:
        """Which side of the current comparison a layer falls on."""
        bottom_start, bottom_stop, top_start, top_stop = self.compare_indexes
        if top_start <= index <= top_stop:
            return CompareSide.TOP
        if bottom_start <= index <= bottom_stop:
            return CompareSide.BOTTOM
        return CompareSide.NONE

    def _notify(self) -> LayerSelection:
        selection = self.selection()
        for listener in self._listeners:
            try:
                listener(selection)
            except Exception as e:
                logger.error("layer change listener failed: %s", e)
                raise ListenerError(f"layer change listener failed: {e}") from e
        return selection
