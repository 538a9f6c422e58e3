"""Docker Registry API v2 image source."""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiohttp

from ..analysis import build_analysis, layer_commands
from ..exceptions import (
    BlobDownloadError,
    ManifestError,
    RegistryConnectionError,
    RegistryError,
    TarReadError,
)
from ..filetree import FileTree
from ..models import Layer, LoadedImage
from ..utils.digest import new_hasher, validate_digest

logger = logging.getLogger(__name__)

MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

MANIFEST_ACCEPT = ", ".join([MANIFEST_V2, OCI_MANIFEST, MANIFEST_LIST_V2, OCI_INDEX])
INDEX_TYPES = {MANIFEST_LIST_V2, OCI_INDEX}

CHUNK_SIZE = 1024 * 1024


class RegistryClient:
    """Async client that loads image layers from an unauthenticated registry."""

    def __init__(
        self,
        registry_url: str,
        timeout: int = 30,
        connector: Optional[aiohttp.TCPConnector] = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            registry_url: Registry URL (e.g., http://localhost:5000)
            timeout: Request timeout in seconds
            connector: aiohttp connector for connection pooling
        """
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def check_registry_v2(self) -> bool:
        """Check if the registry supports v2 API."""
        try:
            async with self.session.get(f"{self.registry_url}/v2/") as resp:
                return resp.status == 200
        except aiohttp.ClientError:
            return False

    async def get_manifest(
        self, repository: str, reference: str, platform: str = "linux/amd64"
    ) -> Dict[str, Any]:
        """Retrieve an image manifest, resolving manifest lists to ``platform``.

        Args:
            repository: Repository name
            reference: Tag or digest reference
            platform: "os/architecture" to pick from a manifest list

        Returns:
            Image manifest dictionary

        Raises:
            ManifestError: If retrieval fails
        """
        manifest = await self._fetch_manifest(repository, reference)
        if manifest.get("mediaType") not in INDEX_TYPES and "manifests" not in manifest:
            return manifest

        entries = manifest.get("manifests") or []
        if not entries:
            raise ManifestError(f"Empty manifest list for {repository}:{reference}")

        os_name, _, architecture = platform.partition("/")
        chosen = entries[0]
        for entry in entries:
            entry_platform = entry.get("platform") or {}
            if (
                entry_platform.get("os") == os_name
                and entry_platform.get("architecture") == architecture
            ):
                chosen = entry
                break

        logger.debug("resolved %s:%s to %s", repository, reference, chosen["digest"])
        return await self._fetch_manifest(repository, chosen["digest"])

    async def _fetch_manifest(self, repository: str, reference: str) -> Dict[str, Any]:
        try:
            url = f"{self.registry_url}/v2/{repository}/manifests/{reference}"
            async with self.session.get(url, headers={"Accept": MANIFEST_ACCEPT}) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

        except aiohttp.ClientError as e:
            raise ManifestError(f"Failed to get manifest: {e}") from e

    async def get_blob_json(self, repository: str, digest: str) -> Dict[str, Any]:
        """Fetch a JSON blob such as the image config.

        Raises:
            BlobDownloadError: If the blob cannot be fetched
        """
        try:
            url = f"{self.registry_url}/v2/{repository}/blobs/{digest}"
            async with self.session.get(url) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

        except aiohttp.ClientError as e:
            raise BlobDownloadError(f"Failed to get blob {digest}: {e}") from e

    async def download_blob(self, repository: str, digest: str, dest: Path) -> Path:
        """Stream a blob to ``dest``, verifying its digest.

        Args:
            repository: Repository name
            digest: Blob digest
            dest: File to write

        Returns:
            Path of the written file

        Raises:
            ValueError: If the digest format is invalid
            BlobDownloadError: If download fails or the content does not match
        """
        if not validate_digest(digest):
            raise ValueError(f"Invalid digest format: {digest}")

        dest = Path(dest)
        hasher = new_hasher(digest)
        partial = dest.with_name(dest.name + ".partial")
        try:
            url = f"{self.registry_url}/v2/{repository}/blobs/{digest}"
            async with self.session.get(url) as resp:
                resp.raise_for_status()
                async with aiofiles.open(partial, "wb") as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        hasher.update(chunk)
                        await f.write(chunk)

        except aiohttp.ClientError as e:
            partial.unlink(missing_ok=True)
            raise BlobDownloadError(f"Failed to download blob {digest}: {e}") from e

        actual = f"{digest.split(':', 1)[0]}:{hasher.hexdigest()}"
        if actual != digest:
            partial.unlink(missing_ok=True)
            raise BlobDownloadError(f"Digest mismatch for {digest}: got {actual}")

        # only verified content lands at dest
        partial.replace(dest)
        return dest

    async def load_image(
        self,
        repository: str,
        reference: str = "latest",
        cache_dir: Optional[Path] = None,
        concurrent_downloads: int = 3,
    ) -> LoadedImage:
        """Download an image's layers and build its file trees.

        Args:
            repository: Repository name (e.g., myapp)
            reference: Tag or digest
            cache_dir: Directory to keep downloaded layer blobs in; a temporary
                directory is used when omitted
            concurrent_downloads: Number of concurrent layer downloads

        Returns:
            LoadedImage with layers, file trees, metrics and config labels

        Raises:
            RegistryConnectionError: If the registry does not speak v2
            ManifestError: If the manifest cannot be read
            BlobDownloadError: If a blob cannot be downloaded
        """
        if not await self.check_registry_v2():
            raise RegistryConnectionError(
                f"Registry at {self.registry_url} does not support v2 API"
            )

        manifest = await self.get_manifest(repository, reference)
        try:
            config_digest = manifest["config"]["digest"]
            descriptors: List[Dict[str, Any]] = manifest["layers"]
        except (KeyError, TypeError) as e:
            raise ManifestError(f"Malformed manifest for {repository}:{reference}") from e

        config = await self.get_blob_json(repository, config_digest)

        if cache_dir is not None:
            Path(cache_dir).mkdir(parents=True, exist_ok=True)
            trees = await self._load_trees(repository, descriptors, Path(cache_dir), concurrent_downloads)
        else:
            with tempfile.TemporaryDirectory(prefix="layerscope-") as tmp:
                trees = await self._load_trees(repository, descriptors, Path(tmp), concurrent_downloads)

        diff_ids = (config.get("rootfs") or {}).get("diff_ids") or []
        commands = layer_commands(config, len(descriptors))
        layers = [
            Layer(
                id=descriptor["digest"].split(":", 1)[-1],
                digest=diff_ids[index] if index < len(diff_ids) else descriptor["digest"],
                index=index,
                size=tree.size,
                command=commands[index],
            )
            for index, (descriptor, tree) in enumerate(zip(descriptors, trees))
        ]

        separator = "@" if validate_digest(reference) else ":"
        image = f"{repository}{separator}{reference}"
        if layers:
            layers[-1].names = [image]
        logger.info("loaded %d layers of %s from %s", len(layers), image, self.registry_url)

        labels = (config.get("config") or {}).get("Labels") or {}
        return LoadedImage(
            analysis=build_analysis(layers, trees, image),
            labels=labels,
            repo_tags=[image],
        )

    async def _load_trees(
        self,
        repository: str,
        descriptors: List[Dict[str, Any]],
        directory: Path,
        concurrent_downloads: int,
    ) -> List[FileTree]:
        semaphore = asyncio.Semaphore(concurrent_downloads)
        loop = asyncio.get_running_loop()

        async def load_layer(descriptor: Dict[str, Any]) -> FileTree:
            digest = descriptor["digest"]
            async with semaphore:
                path = directory / digest.replace(":", "_")
                if not path.exists():
                    logger.debug("downloading layer %s", digest)
                    await self.download_blob(repository, digest, path)
                try:
                    return await loop.run_in_executor(None, FileTree.from_tar, path)
                except TarReadError as e:
                    raise RegistryError(f"Layer {digest} is not a tar archive: {e}") from e

        # every download must finish before the directory is removed
        results = await asyncio.gather(
            *(load_layer(d) for d in descriptors), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)


async def load_registry_image(
    registry_url: str,
    repository: str,
    reference: str = "latest",
    timeout: int = 30,
    cache_dir: Optional[Path] = None,
) -> LoadedImage:
    """Load an image from a registry.

    Examples:
        loaded = await load_registry_image("http://localhost:5000", "myapp", "v1")
    """
    async with RegistryClient(registry_url, timeout=timeout) as client:
        return await client.load_image(repository, reference, cache_dir=cache_dir)
