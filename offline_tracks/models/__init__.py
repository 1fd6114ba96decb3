"""
Data Models Layer.

This package contains the Pydantic models and plain data structures used
throughout the application, such as configuration and track state.
"""

from .config import PlayerConfig, Theme
from .track import DownloadProgress, TrackInfo, TrackState

__all__ = ["DownloadProgress", "PlayerConfig", "Theme", "TrackInfo", "TrackState"]
