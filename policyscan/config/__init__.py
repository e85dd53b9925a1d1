"""Configuration schema and validation for policyscan."""

from .schema import ScanSettings

__all__ = [
    "ScanSettings",
]
