"""Example: open an image and walk through its layers.

Usage:
    python examples/inspect_image.py image.tar
    python examples/inspect_image.py http://localhost:5000 myapp:latest
"""

import asyncio
import logging
import sys

from layerscope import LayerscopeError, LayerSelection, SessionConfig
from layerscope.models import format_size
from layerscope.session import open_archive, open_registry_image

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def show_selection(selection: LayerSelection) -> None:
    logger.info(
        "layer %d: %s (compare %s)", selection.index, selection.layer, tuple(selection.indexes)
    )


async def main(args: list[str]) -> int:
    config = SessionConfig.from_env()

    try:
        if len(args) == 1:
            session = await open_archive(args[0], config)
        elif len(args) == 2:
            session = await open_registry_image(args[0], args[1], config)
        else:
            print(__doc__)
            return 2
    except LayerscopeError as e:
        logger.error(f"Failed to open image: {e}")
        return 1

    summary = session.details.summary
    logger.info(
        "%s: %d layers, %s, efficiency %.1f%%, %s wasted",
        session.analysis.image,
        len(session.state.layers),
        format_size(summary.size_bytes),
        summary.efficiency * 100,
        format_size(summary.wasted_bytes),
    )
    for item in summary.inefficiencies[:5]:
        logger.info("  %s x%d (%s)", item.path, item.occurrences, format_size(item.cumulative_size))

    session.state.add_listener(show_selection)
    show_selection(session.selection())
    while session.state.cursor_down():
        details = session.layer_details()
        if details.buildpack:
            logger.info("  built by %s", details.buildpack)
        for path, change in sorted(session.changes().items())[:10]:
            logger.info("  %-8s %s", change.value, path)

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
