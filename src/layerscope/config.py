"""Session configuration."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ValidationError
from .models import CompareMode

ENV_PREFIX = "LAYERSCOPE_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValidationError(f"{name} must be a boolean, got {value!r}")


@dataclass
class SessionConfig:
    """Options for building and loading a session."""

    show_aggregated_changes: bool = False
    collapse_base_stack: bool = True
    strict_base_stack: bool = True
    registry_timeout: int = 30
    blob_cache_dir: Optional[Path] = None

    @property
    def compare_mode(self) -> CompareMode:
        if self.show_aggregated_changes:
            return CompareMode.ALL_LAYERS
        return CompareMode.SINGLE_LAYER

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        """Load configuration from ``LAYERSCOPE_*`` environment variables.

        Raises:
            ValidationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        config = cls()

        for attr in ("show_aggregated_changes", "collapse_base_stack", "strict_base_stack"):
            name = ENV_PREFIX + attr.upper()
            if name in env:
                setattr(config, attr, _parse_bool(name, env[name]))

        timeout = env.get(ENV_PREFIX + "REGISTRY_TIMEOUT")
        if timeout is not None:
            try:
                config.registry_timeout = int(timeout)
            except ValueError as e:
                raise ValidationError(f"Invalid registry timeout: {timeout!r}") from e
            if config.registry_timeout <= 0:
                raise ValidationError("Registry timeout must be positive")

        cache_dir = env.get(ENV_PREFIX + "BLOB_CACHE_DIR")
        if cache_dir:
            config.blob_cache_dir = Path(cache_dir)

        return config
