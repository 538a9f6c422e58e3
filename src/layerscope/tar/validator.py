"""Validation for docker-save archives."""

import json
import tarfile
from pathlib import Path
from typing import Any

from ..exceptions import ValidationError

REQUIRED_MANIFEST_FIELDS = ["Config", "Layers"]


def get_tar_members(tar: tarfile.TarFile) -> set[str]:
    """Extract member names from tar file."""
    return {member.name for member in tar.getmembers()}


def read_manifest(tar: tarfile.TarFile) -> list[dict[str, Any]] | None:
    """Read and parse manifest.json, or None if it is missing or malformed."""
    try:
        manifest_member = tar.extractfile("manifest.json")
        if manifest_member is None:
            return None
        manifest_data = json.loads(manifest_member.read().decode("utf-8"))
    except (KeyError, UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(manifest_data, list) or len(manifest_data) == 0:
        return None
    return manifest_data


def validate_manifest_entry(
    manifest_entry: dict[str, Any], tar_members: set[str]
) -> bool:
    """Check an entry names a config and layers that exist in the archive."""
    if not isinstance(manifest_entry, dict):
        return False

    if not all(field in manifest_entry for field in REQUIRED_MANIFEST_FIELDS):
        return False

    if manifest_entry["Config"] not in tar_members:
        return False

    layers = manifest_entry["Layers"]
    if not isinstance(layers, list):
        return False

    return all(layer in tar_members for layer in layers)


def validate_docker_tar(tar_path: Path) -> bool:
    """Check whether a file is a docker-save archive.

    Args:
        tar_path: Path to the archive

    Returns:
        True if the archive holds a manifest whose config and layers exist

    Raises:
        ValidationError: If the file does not exist or cannot be read
    """
    tar_path = Path(tar_path)
    if not tar_path.exists():
        raise ValidationError(f"Tar file does not exist: {tar_path}")

    try:
        if not tarfile.is_tarfile(tar_path):
            return False

        with tarfile.open(tar_path, "r") as tar:
            tar_members = get_tar_members(tar)
            if "manifest.json" not in tar_members:
                return False

            manifest_data = read_manifest(tar)
            if manifest_data is None:
                return False

            return all(
                validate_manifest_entry(entry, tar_members) for entry in manifest_data
            )

    except (tarfile.TarError, OSError) as e:
        raise ValidationError(f"Error reading tar file: {e}") from e
