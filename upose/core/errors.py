from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid tracker parameters (non-positive spread/radius, dimension mismatch)."""
