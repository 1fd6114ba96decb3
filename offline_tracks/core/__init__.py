"""
Core playback engine of the application.

This package contains the primary logic. Each `TrackController` drives one
track through download, caching and playback, while the `PlaybackCoordinator`
keeps at most one of them playing at a time.
"""
