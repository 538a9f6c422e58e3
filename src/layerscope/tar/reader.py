"""Docker-save archive reader implementation."""

import asyncio
import io
import json
import logging
import tarfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..analysis import build_analysis, layer_commands
from ..exceptions import TarReadError, ValidationError
from ..filetree import FileTree
from ..models import Layer, LoadedImage
from ..utils.digest import calculate_digest
from .models import ManifestEntry, layer_id_from_path
from .validator import validate_docker_tar

logger = logging.getLogger(__name__)


class TarImageReader:
    """Async reader for docker save tar files."""

    def __init__(self, tar_path: str) -> None:
        """Initialize tar reader.

        Args:
            tar_path: Path to the tar file
        """
        self.tar_path = Path(tar_path)
        if not self.tar_path.exists():
            raise TarReadError(f"Tar file not found: {tar_path}")
        self._tar_file: Optional[tarfile.TarFile] = None

    async def __aenter__(self) -> "TarImageReader":
        """Enter async context manager."""
        loop = asyncio.get_running_loop()
        try:
            self._tar_file = await loop.run_in_executor(
                None, tarfile.open, str(self.tar_path), "r"
            )
        except (tarfile.TarError, OSError) as e:
            raise TarReadError(f"Failed to open {self.tar_path}: {e}") from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the tar file."""
        if self._tar_file:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._tar_file.close)
            self._tar_file = None

    async def get_manifest(self) -> ManifestEntry:
        """Get the first image entry of manifest.json.

        Raises:
            TarReadError: If manifest cannot be read
        """
        try:
            loop = asyncio.get_running_loop()
            manifest_data = await loop.run_in_executor(
                None, self._extract_file_content, "manifest.json"
            )
            manifest_list = json.loads(manifest_data)
            if not manifest_list:
                raise TarReadError("Empty manifest")
            return ManifestEntry.from_dict(manifest_list[0])
        except TarReadError:
            raise
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise TarReadError(f"Failed to read manifest.json: {e}") from e

    async def get_config(self, config_path: str) -> Dict[str, Any]:
        """Get image configuration JSON.

        Args:
            config_path: Path of the config file inside the archive

        Raises:
            TarReadError: If config cannot be read
        """
        loop = asyncio.get_running_loop()
        config_data = await loop.run_in_executor(
            None, self._extract_file_content, config_path
        )
        try:
            return json.loads(config_data)
        except json.JSONDecodeError as e:
            raise TarReadError(f"Failed to read config {config_path}: {e}") from e

    async def read_layer(self, layer_path: str, diff_id: str = "") -> tuple[str, FileTree]:
        """Read one layer tar into a file tree.

        Args:
            layer_path: Path to layer file in tar
            diff_id: Digest from the config rootfs; computed from the layer
                content when empty

        Returns:
            Tuple of (layer digest, file tree)
        """
        loop = asyncio.get_running_loop()
        layer_data = await loop.run_in_executor(
            None, self._extract_file_content, layer_path
        )
        digest = diff_id or calculate_digest(layer_data)
        tree = await loop.run_in_executor(None, _tree_from_bytes, layer_data)
        return digest, tree

    async def extract_image(self) -> LoadedImage:
        """Read every layer of the first image in the archive.

        Returns:
            LoadedImage with layers, file trees, metrics and config labels

        Raises:
            TarReadError: If the archive cannot be read
        """
        manifest = await self.get_manifest()
        config = await self.get_config(manifest.config_path)

        diff_ids = (config.get("rootfs") or {}).get("diff_ids") or []
        commands = layer_commands(config, len(manifest.layer_paths))

        layers = []
        trees = []
        for index, layer_path in enumerate(manifest.layer_paths):
            diff_id = diff_ids[index] if index < len(diff_ids) else ""
            digest, tree = await self.read_layer(layer_path, diff_id)
            logger.debug("read layer %d %s (%d entries)", index, digest, len(tree))
            layers.append(
                Layer(
                    id=layer_id_from_path(layer_path),
                    digest=digest,
                    index=index,
                    size=tree.size,
                    command=commands[index],
                )
            )
            trees.append(tree)

        if layers:
            layers[-1].names = list(manifest.repo_tags)

        image = manifest.repo_tags[0] if manifest.repo_tags else self.tar_path.name
        logger.info("read %d layers from %s", len(layers), image)

        labels = (config.get("config") or {}).get("Labels") or {}
        return LoadedImage(
            analysis=build_analysis(layers, trees, image),
            labels=labels,
            repo_tags=list(manifest.repo_tags),
        )

    def _extract_file_content(self, filename: str) -> bytes:
        """Extract file content from tar (sync helper).

        Args:
            filename: Name of file to extract

        Returns:
            File content as bytes

        Raises:
            TarReadError: If file cannot be extracted
        """
        if not self._tar_file:
            raise TarReadError("Tar file not opened")

        try:
            member = self._tar_file.getmember(filename)
            file_obj = self._tar_file.extractfile(member)
            if file_obj is None:
                raise TarReadError(f"Could not extract {filename}")

            with file_obj:
                return file_obj.read()
        except KeyError:
            raise TarReadError(f"File {filename} not found in tar")
        except (tarfile.TarError, OSError) as e:
            raise TarReadError(f"Failed to extract {filename}: {e}") from e


def _tree_from_bytes(data: bytes) -> FileTree:
    return FileTree.from_tar(io.BytesIO(data))


async def load_docker_archive(tar_path: str) -> LoadedImage:
    """Validate and read a docker-save archive.

    Args:
        tar_path: Path to the archive

    Returns:
        LoadedImage for the first image in the archive

    Raises:
        ValidationError: If the file is not a docker-save archive
        TarReadError: If the archive cannot be read
    """
    if not validate_docker_tar(Path(tar_path)):
        raise ValidationError(f"Invalid Docker tar file: {tar_path}")

    async with TarImageReader(tar_path) as reader:
        return await reader.extract_image()
