"""Data models for docker-save archive handling."""

from dataclasses import dataclass, field
from typing import Any, List


@dataclass
class ManifestEntry:
    """One image entry of an archive's manifest.json."""

    config_path: str
    layer_paths: List[str]
    repo_tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ManifestEntry":
        return cls(
            config_path=data["Config"],
            layer_paths=list(data.get("Layers") or []),
            repo_tags=list(data.get("RepoTags") or []),
        )


def layer_id_from_path(layer_path: str) -> str:
    """Layer id for an archive path.

    Legacy archives store ``<id>/layer.tar``; OCI layout archives store
    ``blobs/sha256/<hex>``.
    """
    parts = layer_path.split("/")
    if len(parts) >= 2 and parts[-1] == "layer.tar":
        return parts[-2]
    return parts[-1]
