from lyricsync.models.lyrics import (
    LyricsVersionData,
    RetrievedLyrics,
    SubmitResult,
    TimedLine,
)
from lyricsync.models.pipeline import RegenerateResult, RunSnapshot, StageStats
from lyricsync.models.transcript import Transcript, TranscriptWord

__all__ = [
    "LyricsVersionData",
    "RetrievedLyrics",
    "SubmitResult",
    "TimedLine",
    "RegenerateResult",
    "RunSnapshot",
    "StageStats",
    "Transcript",
    "TranscriptWord",
]
