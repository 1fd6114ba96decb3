"""
Loads the playlist file describing which tracks are available.

The playlist is an INI file with one section per track key:

    [episode-01]
    label = First episode
    url = https://example.org/media/episode-01.mp3
"""

import configparser
import logging
from pathlib import Path

from pydantic import ValidationError

from offline_tracks.exceptions import ConfigurationError
from offline_tracks.models.track import TrackInfo

log = logging.getLogger(__name__)


def load_playlist(playlist_path: Path) -> list[TrackInfo]:
    """
    Reads every track declared in a playlist file, in file order.

    Raises:
        ConfigurationError: If the file is missing, unparseable, or a track lacks
        its label or URL.
    """
    if not playlist_path.is_file():
        raise ConfigurationError(f"Playlist file not found at '{playlist_path}'.")

    parser = configparser.ConfigParser(default_section="__defaults__")
    try:
        parser.read(playlist_path, encoding="utf-8")
    except configparser.Error as e:
        raise ConfigurationError(f"Error parsing playlist file: {e}") from e

    tracks = []
    for key in parser.sections():
        section = parser[key]
        label = section.get("label", "").strip()
        url = section.get("url", "").strip()
        if not key.strip() or not label or not url:
            raise ConfigurationError(
                f"Track '{key}' in '{playlist_path.name}' needs both a label and a url."
            )
        try:
            tracks.append(TrackInfo(key=key, label=label, url=url))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid track '{key}': {e}") from e

    log.debug(f"Loaded {len(tracks)} tracks from '{playlist_path}'.")
    return tracks


def find_track(tracks: list[TrackInfo], key: str) -> TrackInfo:
    """Returns the track with the given key, or raises ConfigurationError."""
    key = key.strip()
    for track in tracks:
        if track.key == key:
            return track
    raise ConfigurationError(f"No track with key '{key}' in the playlist.")
