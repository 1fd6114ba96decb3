"""
offline-tracks: fetch remote audio tracks once, keep them locally and play them
back offline, resuming where playback last stopped.
"""

__version__ = "0.1.0"
