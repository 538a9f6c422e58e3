"""Custom exceptions for layerscope."""


class LayerscopeError(Exception):
    """Base exception for all layerscope errors."""

    pass


class LayerSetError(LayerscopeError):
    """Raised when a layer set cannot be turned into a session."""

    pass


class LengthMismatchError(LayerSetError):
    """Raised when layer and tree sequences disagree in length."""

    def __init__(self, layer_count: int, tree_count: int) -> None:
        super().__init__(f"mismatched lengths: {layer_count} layers vs {tree_count} trees")
        self.layer_count = layer_count
        self.tree_count = tree_count


class TreeMergeError(LayerSetError):
    """Raised when one file tree cannot be stacked onto another."""

    def __init__(self, message: str, paths: list[str] | None = None) -> None:
        super().__init__(message)
        self.paths = paths or []


class BaseLayerNotFoundError(LayerSetError):
    """Raised when the base image top layer is not part of the layer set."""

    def __init__(self, digest: str) -> None:
        super().__init__(f"base top layer {digest} not found in layer set")
        self.digest = digest


class EmptyLayerSetError(LayerSetError, ValueError):
    """Raised when a layer set has no layers to browse."""

    def __init__(self) -> None:
        super().__init__("layer set is empty")


class IndexOutOfRangeError(LayerscopeError, IndexError):
    """Raised when a layer index falls outside the layer set."""

    def __init__(self, index: int, count: int) -> None:
        super().__init__(f"layer index {index} out of range [0, {count})")
        self.index = index
        self.count = count


class ListenerError(LayerscopeError):
    """Raised when a layer change listener fails.

    The state change that triggered the notification has already been applied.
    """

    pass


class ValidationError(LayerscopeError):
    """Raised when input data fails validation."""

    pass


class TarReadError(LayerscopeError):
    """Raised when unable to read or parse tar file."""

    pass


class RegistryError(LayerscopeError):
    """Base exception for all registry-related errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class BlobDownloadError(RegistryError):
    """Raised when blob download fails."""

    pass
