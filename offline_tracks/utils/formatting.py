"""
Helper functions for formatting data into human-readable strings.
"""

import math


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def human_readable_time(seconds: float | None) -> str:
    """
    Formats a playback time in seconds as 'Hh Mm Ss' (e.g., '1h 1m 1s').

    The hour and minute parts are left out when zero; seconds are always shown.
    """
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    # Half-up rounding, so 2.5 displays as 3s
    hours, remainder = divmod(math.floor(seconds + 0.5), 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)
