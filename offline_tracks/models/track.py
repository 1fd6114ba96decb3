"""
Data models describing a single track and its transient download/playback state.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class TrackInfo(BaseModel):
    """Identity of a track. Immutable for the lifetime of its controller."""

    key: str
    label: str
    url: str

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True


class TrackState(Enum):
    """Lifecycle states of a track controller. Exactly one is active at a time."""

    CONSTRUCTED = "constructed"
    INITIALIZED = "initialized"
    PENDING_DOWNLOAD = "pending-download"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class DownloadProgress:
    """Latest progress report of an in-flight download."""

    loaded: int = 0
    total: int = 0
    computable: bool = False

    @property
    def fraction(self) -> float | None:
        """Completed fraction in [0, 1], or None when the total is unknown."""
        if not self.computable or self.total <= 0:
            return None
        return min(1.0, self.loaded / self.total)
