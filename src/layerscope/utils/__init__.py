"""Utility functions for layerscope."""

from .digest import calculate_digest, validate_digest

__all__ = ["calculate_digest", "validate_digest"]
