from pydantic import BaseModel

from lyricsync.models.lyrics import LyricsSource, SongCategory


class SongData(BaseModel):
    id: str
    external_id: int
    name: str
    category: SongCategory
    file_path: str | None = None
    raw_lyrics: str = ""
    is_available: bool = True
    duration_ms: int | None = None


class AlignmentCandidate(BaseModel):
    song: SongData
    # Source of the newest approved/canonical version, if any
    existing_source: LyricsSource | None = None

    @property
    def has_version(self) -> bool:
        return self.existing_source is not None
