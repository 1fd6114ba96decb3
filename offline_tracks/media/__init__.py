"""
Media Layer.

This package is responsible for fetching remote payloads and for the playback
primitive the track controllers drive.
"""

from .downloader import Downloader
from .playback import ClockPlaybackEngine, PlaybackEngine

__all__ = ["ClockPlaybackEngine", "Downloader", "PlaybackEngine"]
