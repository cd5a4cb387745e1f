#
# config/__init__.py
#
"""
Configuration handling sub-package for runstream.

Exports the loading function and core configuration models.
"""

from .loader import load_config
from .models import DriverOptions, GlobalConfig, PackageSpec, RunstreamConfig

__all__ = [
    "DriverOptions",
    "GlobalConfig",
    "PackageSpec",
    "RunstreamConfig",
    "load_config",
]

# 🔼⚙️
