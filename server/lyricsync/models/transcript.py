from typing import Literal

from pydantic import BaseModel, Field


TranscriptStatus = Literal["queued", "processing", "completed", "error"]


class TranscriptWord(BaseModel):
    text: str
    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)
    confidence: float = Field(ge=0, le=1, default=1.0)


class Transcript(BaseModel):
    id: str
    status: TranscriptStatus
    words: list[TranscriptWord] = Field(default_factory=list)
    text: str | None = None
    error: str | None = None
