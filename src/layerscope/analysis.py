"""Assemble an AnalysisResult from layers and their file trees."""

import logging
from typing import Any

from .filetree import FileTree, analyze_efficiency
from .models import AnalysisResult, Layer

logger = logging.getLogger(__name__)


def layer_commands(config: dict[str, Any], layer_count: int) -> list[str]:
    """Build commands for each layer from the image config history.

    History entries marked ``empty_layer`` produced no filesystem layer and are
    skipped. Missing entries yield an empty command.
    """
    commands = [
        entry.get("created_by", "")
        for entry in config.get("history") or []
        if not entry.get("empty_layer", False)
    ]
    if commands and len(commands) != layer_count:
        logger.debug(
            "history has %d layer entries for %d layers", len(commands), layer_count
        )
    commands += [""] * (layer_count - len(commands))
    return commands[:layer_count]


def build_analysis(
    layers: list[Layer], trees: list[FileTree], image: str = ""
) -> AnalysisResult:
    """Score the layer set and bundle it into an AnalysisResult."""
    efficiency, wasted, inefficiencies = analyze_efficiency(trees)
    return AnalysisResult(
        layers=layers,
        ref_trees=trees,
        efficiency=efficiency,
        size_bytes=sum(layer.size for layer in layers),
        wasted_bytes=wasted,
        inefficiencies=inefficiencies,
        image=image,
    )
