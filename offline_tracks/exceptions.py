"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class OfflineTracksError(Exception):
    """Base exception for all application-specific errors."""


class StoreError(OfflineTracksError):
    """Base class for persistent store failures."""


class StoreUnavailable(StoreError):
    """Raised when the persistent store cannot be opened or initialized."""


class ReadFailed(StoreError):
    """Raised when a read transaction against the store fails."""


class WriteFailed(StoreError):
    """Raised when a write transaction against the store fails."""


class TransportFailed(OfflineTracksError):
    """Raised when fetching a remote payload fails or is rejected."""


class DownloadCancelled(OfflineTracksError):
    """Raised when an in-flight download is cancelled before it completes."""


class NoSourceConfigured(OfflineTracksError):
    """
    Raised when playback is requested before a payload has been configured on the
    playback engine.
    """


class IllegalTransition(OfflineTracksError):
    """Raised when a track controller is asked to make a forbidden state change."""


class ConfigurationError(OfflineTracksError):
    """Raised for issues related to configuration or playlist loading and validation."""
