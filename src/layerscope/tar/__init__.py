"""Docker-save archive loading."""

from .reader import TarImageReader, load_docker_archive
from .validator import validate_docker_tar

__all__ = ["TarImageReader", "load_docker_archive", "validate_docker_tar"]
