"""Cloud Native Buildpacks metadata carried in image config labels."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import ValidationError

LIFECYCLE_METADATA_LABEL = "io.buildpacks.lifecycle.metadata"
BUILD_METADATA_LABEL = "io.buildpacks.build.metadata"


@dataclass(frozen=True)
class BuildpackRef:
    """Buildpack identity."""

    id: str
    version: str

    def __str__(self) -> str:
        return f"{self.id}@{self.version}"


@dataclass(frozen=True)
class BuildpackLayer:
    """A layer contributed by a buildpack."""

    name: str
    sha: str
    buildpack: BuildpackRef


@dataclass
class BOMEntry:
    """Bill-of-materials entry provided by a buildpack."""

    name: str
    version: str
    buildpack: BuildpackRef
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CNBMetadata:
    """Buildpack build information for one image."""

    top_layer: str
    run_image: str = ""
    buildpack_layers: list[BuildpackLayer] = field(default_factory=list)
    bom: list[BOMEntry] = field(default_factory=list)

    @property
    def buildpacks(self) -> list[BuildpackRef]:
        seen: list[BuildpackRef] = []
        for layer in self.buildpack_layers:
            if layer.buildpack not in seen:
                seen.append(layer.buildpack)
        return seen

    def buildpack_for_layer(self, digest: str) -> Optional[BuildpackRef]:
        """Buildpack that produced the layer with ``digest``, if any."""
        for layer in self.buildpack_layers:
            if layer.sha == digest:
                return layer.buildpack
        return None

    def bom_entries_for(self, buildpack: BuildpackRef) -> list[BOMEntry]:
        return [entry for entry in self.bom if entry.buildpack == buildpack]


def _load_label(labels: dict[str, str], key: str) -> Optional[dict[str, Any]]:
    raw = labels.get(key)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in label {key}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Label {key} must hold a JSON object")
    return data


def parse_buildpack_layers(lifecycle: dict[str, Any]) -> list[BuildpackLayer]:
    layers = []
    for buildpack in lifecycle.get("buildpacks") or []:
        ref = BuildpackRef(buildpack.get("key", ""), buildpack.get("version", ""))
        for name, layer in (buildpack.get("layers") or {}).items():
            sha = (layer or {}).get("sha", "")
            if sha:
                layers.append(BuildpackLayer(name=name, sha=sha, buildpack=ref))
    return layers


def parse_bom(build: dict[str, Any]) -> list[BOMEntry]:
    entries = []
    for entry in build.get("bom") or []:
        buildpack = entry.get("buildpack") or {}
        entries.append(
            BOMEntry(
                name=entry.get("name", ""),
                version=entry.get("version", ""),
                buildpack=BuildpackRef(buildpack.get("id", ""), buildpack.get("version", "")),
                metadata=entry.get("metadata") or {},
            )
        )
    return entries


def parse_cnb_metadata(labels: Optional[dict[str, str]]) -> Optional[CNBMetadata]:
    """Read buildpack metadata from image labels.

    Args:
        labels: Image config labels

    Returns:
        CNBMetadata, or None if the image was not built by buildpacks

    Raises:
        ValidationError: If a buildpacks label is malformed or the lifecycle
            metadata does not name the run image top layer
    """
    if not labels:
        return None

    lifecycle = _load_label(labels, LIFECYCLE_METADATA_LABEL)
    if lifecycle is None:
        return None

    run_image = lifecycle.get("runImage") or {}
    top_layer = run_image.get("topLayer", "")
    if not top_layer:
        raise ValidationError("lifecycle metadata has no runImage.topLayer")

    stack_run_image = ((lifecycle.get("stack") or {}).get("runImage") or {}).get("image", "")
    build = _load_label(labels, BUILD_METADATA_LABEL) or {}

    return CNBMetadata(
        top_layer=top_layer,
        run_image=run_image.get("reference") or stack_run_image,
        buildpack_layers=parse_buildpack_layers(lifecycle),
        bom=parse_bom(build),
    )
