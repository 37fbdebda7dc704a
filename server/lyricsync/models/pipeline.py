from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lyricsync.models.lyrics import _to_camel


PipelineMode = Literal["full", "retrieval_only", "alignment_only", "alignment_force"]
PipelineStage = Literal["idle", "retrieval", "alignment", "done", "error"]
RegenerateOutcome = Literal[
    "ok",
    "not_found",
    "no_audio",
    "insufficient_lyrics",
    "no_words",
    "low_confidence",
    "not_configured",
]


class StageStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    candidates: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    retimed: int = 0


class RunSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    running: bool = False
    mode: PipelineMode | None = None
    stage: PipelineStage = "idle"
    trigger_reason: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    retrieval: StageStats = Field(default_factory=StageStats)
    alignment: StageStats = Field(default_factory=StageStats)
    error_samples: list[str] = Field(default_factory=list)


class RegenerateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    outcome: RegenerateOutcome
    message: str
    song_name: str | None = None
    line_count: int = 0
    timed_ratio: float = 0.0
    version_id: str | None = None


class TriggerRequest(BaseModel):
    mode: PipelineMode = "full"


class RegenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    song_id: str


class LoginHookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    user_id: str


class CoverageStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    total_songs: int
    with_audio: int
    with_raw_lyrics: int
    with_timed_lyrics: int
    eligible: int
    estimated_hours: float
    has_search_key: bool
    has_asr_key: bool
