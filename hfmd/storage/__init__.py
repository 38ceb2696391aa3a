"""
Storage Layer.

This package handles data persistence: the configuration file and the
partial files of in-progress downloads.
"""

from .config_manager import ConfigManager
from .partial_store import PartialFileStore

__all__ = ["ConfigManager", "PartialFileStore"]
