"""Layer and image details shown alongside the layer list.

Details come in two closed variants, picked once when a session is built:
``GenericDetails`` for any image and ``BuildpackDetails`` for images built by
Cloud Native Buildpacks.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from .cnb import BOMEntry, BuildpackRef, CNBMetadata
from .models import AnalysisResult, Inefficiency, Layer


@dataclass(frozen=True)
class LayerDetails:
    tags: tuple[str, ...]
    id: str
    digest: str
    command: str
    buildpack: Optional[BuildpackRef] = None
    bom: tuple[BOMEntry, ...] = ()


@dataclass(frozen=True)
class ImageSummary:
    efficiency: float
    size_bytes: int
    wasted_bytes: int
    inefficiencies: tuple[Inefficiency, ...] = ()

    @classmethod
    def from_analysis(cls, analysis: AnalysisResult) -> "ImageSummary":
        return cls(
            efficiency=analysis.efficiency,
            size_bytes=analysis.size_bytes,
            wasted_bytes=analysis.wasted_bytes,
            inefficiencies=tuple(analysis.inefficiencies),
        )


def _base_details(layer: Layer) -> dict:
    return {
        "tags": tuple(layer.names),
        "id": layer.id,
        "digest": layer.digest,
        "command": layer.command,
    }


@dataclass(frozen=True)
class GenericDetails:
    summary: ImageSummary

    def layer_details(self, layer: Layer) -> LayerDetails:
        return LayerDetails(**_base_details(layer))


@dataclass(frozen=True)
class BuildpackDetails:
    summary: ImageSummary
    metadata: CNBMetadata = field(compare=False)

    def layer_details(self, layer: Layer) -> LayerDetails:
        buildpack = self.metadata.buildpack_for_layer(layer.digest)
        bom = tuple(self.metadata.bom_entries_for(buildpack)) if buildpack else ()
        return LayerDetails(**_base_details(layer), buildpack=buildpack, bom=bom)


ImageDetails = Union[GenericDetails, BuildpackDetails]


def build_details(
    analysis: AnalysisResult, metadata: Optional[CNBMetadata] = None
) -> ImageDetails:
    summary = ImageSummary.from_analysis(analysis)
    if metadata is None:
        return GenericDetails(summary)
    return BuildpackDetails(summary, metadata)
