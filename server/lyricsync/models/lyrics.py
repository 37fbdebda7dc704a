from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def _to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


LyricsSource = Literal["manual", "auto_generated", "imported_lrc", "imported_api"]
LyricsStatus = Literal["draft", "pending_review", "approved", "rejected"]
SongCategory = Literal["released", "unreleased", "unsurfaced", "session"]
UserRole = Literal["user", "trusted_contributor", "admin", "system"]


PRIVILEGED_ROLES = frozenset({"admin", "trusted_contributor", "system"})


class Actor(BaseModel):
    """Who is acting on a lyrics version."""

    user_id: str
    role: UserRole = "user"

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


class TimedLine(BaseModel):
    """One lyric line. confidence 0 marks a synthesized (untimed) line."""

    id: str
    start_ms: int = Field(ge=0)
    end_ms: int | None = Field(default=None, ge=0)
    text: str
    confidence: float = Field(ge=0, le=1, default=0.0)


class LyricsVersionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    id: str
    song_id: str
    version_number: int
    status: LyricsStatus
    is_canonical: bool
    source: LyricsSource
    author_id: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime | None = None
    lyrics_data: list[TimedLine] = Field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.lyrics_data)


class SubmitResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    status: LyricsStatus
    is_canonical: bool
    auto_approved: bool
    warnings: list[str] = Field(default_factory=list)


class RetrievedLyrics(BaseModel):
    lyrics_text: str
    source_url: str
    source_id: int | None = None


class CreateVersionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    lyrics_data: list[TimedLine] | None = None
    import_from_raw: bool = False
    source: LyricsSource = "manual"


class UpdateDraftRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    lyrics_data: list[TimedLine]


class ReviewRequest(BaseModel):
    notes: str | None = None
