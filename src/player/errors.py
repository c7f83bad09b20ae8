"""
Exceptions raised by the playlist sync and playback loops.
"""

from typing import Optional


class PlaylistSyncError(Exception):
    """Base class for failures of a single sync cycle."""
    pass


class PairingMissingError(PlaylistSyncError):
    """Raised when no screen credentials are stored."""
    pass


class FetchFailedError(PlaylistSyncError):
    """Raised when the playlist download fails or returns a non-200 status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StagingFailedError(PlaylistSyncError):
    """Raised when preparing a downloaded playlist for display fails."""
    pass


class StagingExhaustedError(PlaylistSyncError):
    """Raised when the same playlist has failed staging too many times."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class RenderError(Exception):
    """Raised or reported by a renderer for the item it is presenting."""
    pass


class StateTransitionError(Exception):
    """Raised when an invalid scheduler state transition is attempted."""
    pass
