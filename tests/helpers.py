"""Test helpers for building layers, trees and archives."""

import gzip
import hashlib
import io
import json
import tarfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from aiohttp import web
from aiohttp.test_utils import TestServer

from layerscope.filetree import FileInfo, FileTree
from layerscope.models import Layer


def make_layers(sizes: list[int], prefix: str = "layer") -> list[Layer]:
    """Create layers with digests sha256:<prefix><index>."""
    return [
        Layer(
            id=f"{prefix}{i}",
            digest=f"sha256:{prefix}{i}",
            index=i,
            size=size,
            command=f"RUN step {i}",
        )
        for i, size in enumerate(sizes)
    ]


def make_tree(files: dict[str, int], whiteouts: Iterable[str] = ()) -> FileTree:
    """Create a tree of regular files mapped to their sizes."""
    return FileTree(
        [FileInfo(path, size=size) for path, size in files.items()],
        whiteouts=whiteouts,
    )


def make_trees(count: int) -> list[FileTree]:
    """One tree per layer, each adding a distinct file."""
    return [make_tree({f"/layer{i}/file": i + 1}) for i in range(count)]


def make_layer_tar(
    files: dict[str, bytes],
    dirs: Iterable[str] = (),
    symlinks: Optional[dict[str, str]] = None,
    compress: bool = False,
) -> bytes:
    """Build an in-memory layer tar.

    Args:
        files: Member name to content; names starting with ".wh." in their
            last component become whiteouts
        dirs: Directory member names
        symlinks: Link name to target
        compress: Gzip the tar
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name in dirs:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    data = buffer.getvalue()
    return gzip.compress(data) if compress else data


def sha256(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def make_config(
    layer_tars: list[bytes],
    labels: Optional[dict[str, str]] = None,
    commands: Optional[list[str]] = None,
) -> dict:
    commands = commands or [f"RUN step {i}" for i in range(len(layer_tars))]
    history = [{"created_by": "LABEL maintainer=test", "empty_layer": True}]
    history += [{"created_by": command} for command in commands]
    return {
        "architecture": "amd64",
        "os": "linux",
        "config": {"Labels": labels or {}},
        "rootfs": {"type": "layers", "diff_ids": [sha256(t) for t in layer_tars]},
        "history": history,
    }


def write_docker_archive(
    path: Path,
    layer_tars: list[bytes],
    labels: Optional[dict[str, str]] = None,
    repo_tags: Optional[list[str]] = None,
    include_diff_ids: bool = True,
) -> Path:
    """Write a legacy docker-save archive (``<id>/layer.tar`` layout)."""
    config = make_config(layer_tars, labels)
    if not include_diff_ids:
        del config["rootfs"]["diff_ids"]
    config_bytes = json.dumps(config).encode()
    config_name = hashlib.sha256(config_bytes).hexdigest() + ".json"

    layer_paths = [
        f"{hashlib.sha256(data).hexdigest()[:16]}{i}/layer.tar"
        for i, data in enumerate(layer_tars)
    ]
    manifest = [
        {
            "Config": config_name,
            "RepoTags": repo_tags if repo_tags is not None else ["test/app:latest"],
            "Layers": layer_paths,
        }
    ]

    with tarfile.open(path, "w") as tar:
        _add_bytes(tar, "manifest.json", json.dumps(manifest).encode())
        _add_bytes(tar, config_name, config_bytes)
        for layer_path, data in zip(layer_paths, layer_tars):
            _add_bytes(tar, layer_path, data)
    return path


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    tar.addfile(info, io.BytesIO(data))


def lifecycle_labels(
    top_layer: str,
    buildpack_layers: Optional[dict[str, str]] = None,
    bom: Optional[list[dict]] = None,
) -> dict[str, str]:
    """Labels as written by the buildpacks lifecycle.

    Args:
        top_layer: Run image top layer digest
        buildpack_layers: Layer name to sha, all from "example/java@1.0"
        bom: Raw BOM entries for the build metadata label
    """
    lifecycle = {
        "runImage": {"topLayer": top_layer, "reference": "example/run@sha256:abc"},
        "stack": {"runImage": {"image": "example/run"}},
        "buildpacks": [
            {
                "key": "example/java",
                "version": "1.0",
                "layers": {
                    name: {"sha": sha, "launch": True}
                    for name, sha in (buildpack_layers or {}).items()
                },
            }
        ],
    }
    labels = {"io.buildpacks.lifecycle.metadata": json.dumps(lifecycle)}
    if bom is not None:
        labels["io.buildpacks.build.metadata"] = json.dumps({"bom": bom})
    return labels


MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
LAYER_GZIP = "application/vnd.docker.image.rootfs.diff.tar.gzip"


class FakeRegistry:
    """In-memory registry serving the read side of the v2 API."""

    def __init__(self, v2: bool = True) -> None:
        self.v2 = v2
        self.manifests: dict[tuple[str, str], dict] = {}
        self.blobs: dict[str, bytes] = {}
        self.blob_requests: list[str] = []

    def app(self) -> web.Application:
        app = web.Application()
        if self.v2:
            app.router.add_get("/v2/", self.handle_base)
        app.router.add_get("/v2/{repo:.+}/manifests/{ref}", self.handle_manifest)
        app.router.add_get("/v2/{repo:.+}/blobs/{digest}", self.handle_blob)
        return app

    async def handle_base(self, request: web.Request) -> web.Response:
        return web.json_response({})

    async def handle_manifest(self, request: web.Request) -> web.Response:
        key = (request.match_info["repo"], request.match_info["ref"])
        manifest = self.manifests.get(key)
        if manifest is None:
            return web.json_response({"errors": [{"code": "MANIFEST_UNKNOWN"}]}, status=404)
        return web.json_response(manifest, content_type=manifest["mediaType"])

    async def handle_blob(self, request: web.Request) -> web.Response:
        digest = request.match_info["digest"]
        self.blob_requests.append(digest)
        if digest not in self.blobs:
            return web.json_response({"errors": [{"code": "BLOB_UNKNOWN"}]}, status=404)
        return web.Response(body=self.blobs[digest])

    def add_blob(self, data: bytes) -> str:
        digest = sha256(data)
        self.blobs[digest] = data
        return digest

    def add_image(
        self,
        repository: str,
        reference: str,
        layer_tars: list[bytes],
        labels: Optional[dict[str, str]] = None,
    ) -> dict:
        """Push an image with gzipped layers; returns its manifest."""
        config_bytes = json.dumps(make_config(layer_tars, labels)).encode()
        manifest = {
            "schemaVersion": 2,
            "mediaType": MANIFEST_V2,
            "config": {
                "mediaType": "application/vnd.docker.container.image.v1+json",
                "size": len(config_bytes),
                "digest": self.add_blob(config_bytes),
            },
            "layers": [],
        }
        for data in layer_tars:
            blob = gzip.compress(data)
            manifest["layers"].append(
                {"mediaType": LAYER_GZIP, "size": len(blob), "digest": self.add_blob(blob)}
            )
        self.manifests[(repository, reference)] = manifest
        return manifest

    def add_manifest_list(self, repository: str, reference: str, platforms: dict[str, dict]) -> None:
        """Publish a manifest list of ``"os/arch"`` to image manifest."""
        entries = []
        for platform, manifest in platforms.items():
            digest = sha256(json.dumps(manifest).encode())
            self.manifests[(repository, digest)] = manifest
            os_name, _, architecture = platform.partition("/")
            entries.append(
                {
                    "mediaType": MANIFEST_V2,
                    "digest": digest,
                    "platform": {"os": os_name, "architecture": architecture},
                }
            )
        self.manifests[(repository, reference)] = {
            "schemaVersion": 2,
            "mediaType": MANIFEST_LIST_V2,
            "manifests": entries,
        }


@asynccontextmanager
async def serve_registry(registry: FakeRegistry) -> AsyncIterator[str]:
    """Run ``registry`` on a local port and yield its base URL."""
    async with TestServer(registry.app()) as server:
        yield str(server.make_url("")).rstrip("/")
