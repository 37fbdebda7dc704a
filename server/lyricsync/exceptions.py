"""Exceptions raised when a lyrics operation is rejected."""


class LyricSyncError(Exception):
    """Base exception for lyricsync."""


class SongNotFoundError(LyricSyncError):
    """The referenced song does not exist."""


class VersionNotFoundError(LyricSyncError):
    """The referenced lyrics version does not exist for that song."""


class InvalidTransitionError(LyricSyncError):
    """The version is not in a state that allows the requested transition."""


class PermissionDeniedError(LyricSyncError):
    """The caller may not act on this version."""


class InvalidLyricsError(LyricSyncError):
    """The supplied lyrics payload cannot be used."""


class InsufficientTimingError(LyricSyncError):
    """Too few lines carry a start time for the version to be submitted."""

    def __init__(self, timed: int, total: int, required_ratio: float) -> None:
        self.timed = timed
        self.total = total
        self.required_ratio = required_ratio
        pct = round(timed / total * 100) if total else 0
        super().__init__(
            f"At least {round(required_ratio * 100)}% of lines must be timed. "
            f"Currently: {pct}% ({timed}/{total})"
        )


class ConfigurationError(LyricSyncError):
    """A required external credential is missing."""


class TranscriptionError(LyricSyncError):
    """The ASR provider failed or did not finish in time."""
