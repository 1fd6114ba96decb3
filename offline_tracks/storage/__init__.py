"""
Storage Layer.

This package handles all data persistence: the key-value store holding cached
payloads and playback positions, the configuration file, and the playlist file.
"""

from .config_manager import ConfigManager
from .playlist import find_track, load_playlist
from .store import ABSENT, Collection, PersistentStore, close_stores, open_store

__all__ = [
    "ABSENT",
    "Collection",
    "ConfigManager",
    "PersistentStore",
    "close_stores",
    "find_track",
    "load_playlist",
    "open_store",
]
