"""Remote image sources."""

from .registry_client import RegistryClient, load_registry_image

__all__ = ["RegistryClient", "load_registry_image"]
