"""In-memory state of the lyrics pipeline run. Not persisted."""

import logging
import threading
from collections import deque
from datetime import UTC, datetime
from typing import Literal

from lyricsync.config import settings
from lyricsync.models.pipeline import PipelineMode, PipelineStage, RunSnapshot, StageStats

logger = logging.getLogger(__name__)

StageName = Literal["retrieval", "alignment"]
Outcome = Literal["succeeded", "failed", "skipped"]


class RunState:
    """Thread-safe run status shared by all pipeline workers.

    ``try_start`` is the single-flight gate: it flips ``running`` under the
    lock, so of any number of concurrent callers exactly one gets True.
    Counters only ever increase while a run is active.
    """

    def __init__(self, log_limit: int | None = None, error_limit: int | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = RunSnapshot()
        self._logs: deque[str] = deque(maxlen=log_limit or settings.run_log_limit)
        self._errors: deque[str] = deque(maxlen=error_limit or settings.error_sample_limit)

    @property
    def running(self) -> bool:
        with self._lock:
            return self._snapshot.running

    def try_start(self, reason: str, mode: PipelineMode) -> bool:
        with self._lock:
            if self._snapshot.running:
                return False
            self._snapshot = RunSnapshot(
                running=True,
                mode=mode,
                stage="idle",
                trigger_reason=reason,
                started_at=datetime.now(UTC),
            )
            self._errors.clear()
            return True

    def set_stage(self, stage: PipelineStage) -> None:
        with self._lock:
            self._snapshot.stage = stage

    def set_candidates(self, stage: StageName, count: int) -> None:
        with self._lock:
            self._stats(stage).candidates = count

    def record(self, stage: StageName, outcome: Outcome, retimed: bool = False) -> None:
        with self._lock:
            stats = self._stats(stage)
            stats.processed += 1
            setattr(stats, outcome, getattr(stats, outcome) + 1)
            if retimed and outcome == "succeeded":
                stats.retimed += 1

    def record_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)
        self.log(message, level=logging.WARNING)

    def log(self, message: str, level: int = logging.INFO) -> None:
        line = f"[{datetime.now(UTC).isoformat()}] {message}"
        with self._lock:
            self._logs.append(line)
        logger.log(level, message)

    def finish(self, ok: bool) -> None:
        with self._lock:
            self._snapshot.running = False
            self._snapshot.finished_at = datetime.now(UTC)
            self._snapshot.stage = "done" if ok else "error"

    def snapshot(self) -> RunSnapshot:
        with self._lock:
            copy = self._snapshot.model_copy(deep=True)
            copy.error_samples = list(self._errors)
            return copy

    def logs(self) -> list[str]:
        with self._lock:
            return list(self._logs)

    def _stats(self, stage: StageName) -> StageStats:
        return self._snapshot.retrieval if stage == "retrieval" else self._snapshot.alignment
