"""Catalog-wide lyrics pipeline: fill missing raw lyrics, then generate timings.

One ``LyricsPipeline`` exists per process (``get_pipeline``). A run is
started with ``trigger`` (fire-and-forget, from a request handler or the
login hook) or awaited with ``run`` (Celery). ``trigger`` called without a
running event loop starts the run on its own loop in a daemon thread. Only one run can be active at
a time; a trigger during a run is refused rather than queued.

Each stage fans its candidates out to a fixed number of asyncio workers
pulling from a shared cursor. A failure for one song is counted and logged
and never stops the run.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from functools import lru_cache
from typing import TypeVar

from lyricsync.config import settings
from lyricsync.db.session import get_session_factory
from lyricsync.models.catalog import AlignmentCandidate, SongData
from lyricsync.models.pipeline import PipelineMode, RegenerateResult, RunSnapshot
from lyricsync.services.aligner import AlignmentConfig, align_words_to_lyrics, timed_ratio
from lyricsync.services.audio import build_audio_url, check_audio_url
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.lyrics_retriever import LyricsRetriever
from lyricsync.services.run_state import RunState
from lyricsync.services.transcription import TranscriptionService
from lyricsync.services.versioning import VersioningService

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRIEVAL_MODES = {"full", "retrieval_only"}
ALIGNMENT_MODES = {"full", "alignment_only", "alignment_force"}


async def run_queue(
    items: Sequence[T], workers: int, handler: Callable[[T], Awaitable[None]],
) -> None:
    """Process ``items`` with at most ``workers`` concurrent handlers, each item once."""
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            # No await between the read and the increment, so no two workers share an index
            i = next_index
            next_index += 1
            await handler(items[i])

    await asyncio.gather(*(worker() for _ in range(min(workers, len(items)))))


class LyricsPipeline:
    def __init__(
        self,
        catalog: CatalogStore,
        versioning: VersioningService,
        retriever: LyricsRetriever | None = None,
        transcription: TranscriptionService | None = None,
        run_state: RunState | None = None,
        alignment_config: AlignmentConfig | None = None,
    ) -> None:
        self._catalog = catalog
        self._versioning = versioning
        self._retriever = retriever or LyricsRetriever()
        self._transcription = transcription or TranscriptionService()
        self._state = run_state or RunState()
        self._alignment_config = alignment_config or AlignmentConfig.from_settings()
        self._task: asyncio.Task[None] | None = None
        self._thread: threading.Thread | None = None

    # ── Public surface ───────────────────────────────────────────────────

    def trigger(self, reason: str, mode: PipelineMode = "full") -> bool:
        """Start a run in the background. False means one is already running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if not self._state.try_start(reason, mode):
            self._state.log(f"Run already in progress; ignoring trigger ({reason})")
            return False
        if loop is None:
            self._thread = threading.Thread(
                target=asyncio.run,
                args=(self._execute_detached(reason, mode),),
                name="lyrics-pipeline",
                daemon=True,
            )
            self._thread.start()
        else:
            self._task = loop.create_task(self._execute(reason, mode))
        return True

    async def run(self, reason: str, mode: PipelineMode = "full") -> bool:
        """Run to completion in the caller's task. False means one is already running."""
        if not self._state.try_start(reason, mode):
            self._state.log(f"Run already in progress; ignoring trigger ({reason})")
            return False
        await self._execute(reason, mode)
        return True

    async def wait(self) -> None:
        """Wait for the background run started by ``trigger``, if any."""
        if self._task is not None:
            await asyncio.shield(self._task)
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join)

    def status(self) -> RunSnapshot:
        return self._state.snapshot()

    def logs(self) -> list[str]:
        return self._state.logs()

    async def regenerate(self, song_id: str) -> RegenerateResult:
        """Time a single song on demand, outside of any catalog run."""
        if not settings.assemblyai_api_key:
            return RegenerateResult(
                outcome="not_configured", message="ASSEMBLYAI_API_KEY not configured",
            )

        song = await asyncio.to_thread(self._catalog.get_song, song_id)
        if song is None:
            return RegenerateResult(outcome="not_found", message="Song not found")
        if song.file_path and not await check_audio_url(build_audio_url(song.file_path)):
            return RegenerateResult(
                outcome="no_audio", message="Song audio is not reachable", song_name=song.name,
            )
        return await self._generate(song)

    async def close(self) -> None:
        await self._retriever.close()
        await self._transcription.close()

    # ── Run ──────────────────────────────────────────────────────────────

    async def _execute(self, reason: str, mode: PipelineMode) -> None:
        started = time.monotonic()
        self._state.log(
            f"Triggered ({mode}) by {reason} | workers: "
            f"retrieval={settings.retrieval_worker_count}, "
            f"alignment={settings.alignment_worker_count}"
        )
        ok = True
        try:
            if mode in RETRIEVAL_MODES:
                await self.fill_missing_lyrics()
            if mode in ALIGNMENT_MODES:
                await self.sync_timed_lyrics(force=mode == "alignment_force")
        except Exception as e:
            ok = False
            logger.exception("Lyrics pipeline run failed")
            self._state.record_error(f"Run failed: {e}")
        finally:
            self._state.finish(ok)
            self._state.log(f"Run complete in {time.monotonic() - started:.0f}s")

    async def _execute_detached(self, reason: str, mode: PipelineMode) -> None:
        # HTTP clients are bound to this thread's loop and must not outlive it
        try:
            await self._execute(reason, mode)
        finally:
            await self.close()

    async def fill_missing_lyrics(self) -> None:
        if not settings.genius_access_token:
            self._state.log("GENIUS_ACCESS_TOKEN missing; skipping retrieval stage", logging.WARNING)
            return

        self._state.set_stage("retrieval")
        songs = await asyncio.to_thread(
            self._catalog.retrieval_candidates,
            settings.eligible_category_list,
            settings.retrieval_max_songs,
        )
        self._state.set_candidates("retrieval", len(songs))
        self._state.log(f"Retrieval stage: {len(songs)} songs missing raw lyrics")

        await run_queue(songs, settings.retrieval_worker_count, self._retrieve_one)

        stats = self._state.snapshot().retrieval
        self._state.log(
            f"Retrieval stage done. Filled lyrics for {stats.succeeded}/{len(songs)} songs"
        )

    async def sync_timed_lyrics(self, force: bool = False) -> None:
        if not settings.assemblyai_api_key:
            self._state.log("ASSEMBLYAI_API_KEY missing; skipping alignment stage", logging.WARNING)
            return

        self._state.set_stage("alignment")
        candidates = await asyncio.to_thread(
            self._catalog.alignment_candidates,
            settings.eligible_category_list,
            settings.min_raw_lyrics_chars,
            force,
            settings.alignment_max_songs,
        )
        self._state.set_candidates("alignment", len(candidates))
        self._state.log(
            f"Alignment stage: {len(candidates)} songs need timing{' (force mode)' if force else ''}"
        )
        if candidates:
            await self._preflight_audio()

        await run_queue(candidates, settings.alignment_worker_count, self._align_one)

        stats = self._state.snapshot().alignment
        self._state.log(
            f"Alignment stage done. Synced {stats.succeeded}/{len(candidates)} songs "
            f"({stats.retimed} re-timed)"
        )

    # ── Per-song workers ─────────────────────────────────────────────────

    async def _retrieve_one(self, song: SongData) -> None:
        try:
            result = await self._retriever.fetch_lyrics(song.name)
            if result is None:
                self._state.record("retrieval", "failed")
                return
            written = await asyncio.to_thread(
                self._catalog.set_raw_lyrics,
                song.id,
                result.lyrics_text,
                f"Lyrics source: Genius ({result.source_url})",
            )
            self._state.record("retrieval", "succeeded" if written else "skipped")
        except Exception as e:
            logger.exception("Retrieval failed for '%s'", song.name)
            self._state.record("retrieval", "failed")
            self._state.record_error(f'Retrieval failed for "{song.name}": {e}')

    async def _align_one(self, candidate: AlignmentCandidate) -> None:
        song = candidate.song
        try:
            result = await self._generate(song)
        except Exception as e:
            logger.exception("Timing failed for '%s'", song.name)
            self._state.record("alignment", "failed")
            self._state.record_error(f'Timing failed for "{song.name}": {e}')
            return

        if result.outcome == "ok":
            self._state.record("alignment", "succeeded", retimed=candidate.has_version)
        else:
            self._state.record("alignment", "skipped")
            self._state.log(f'Timing skipped for "{song.name}": {result.message}')

    async def _generate(self, song: SongData) -> RegenerateResult:
        """Transcribe, align and publish one song."""
        if not song.file_path:
            return RegenerateResult(
                outcome="no_audio", message="Song has no audio file", song_name=song.name,
            )
        if len(song.raw_lyrics.strip()) < settings.min_raw_lyrics_chars:
            return RegenerateResult(
                outcome="insufficient_lyrics",
                message="Song has no raw lyrics, or too little to align",
                song_name=song.name,
            )

        transcript = await self._transcription.transcribe(build_audio_url(song.file_path))
        if not transcript.words:
            return RegenerateResult(
                outcome="no_words",
                message="Could not generate timed lyrics (no words detected)",
                song_name=song.name,
            )

        lines = align_words_to_lyrics(transcript.words, song.raw_lyrics, self._alignment_config)
        ratio = timed_ratio(lines)
        if not lines or ratio < settings.publish_min_confident_ratio:
            return RegenerateResult(
                outcome="low_confidence",
                message=(
                    f"Only {round(ratio * 100)}% of lines matched the audio "
                    f"(need {round(settings.publish_min_confident_ratio * 100)}%)"
                ),
                song_name=song.name,
                line_count=len(lines),
                timed_ratio=round(ratio, 2),
            )

        version = await asyncio.to_thread(
            self._versioning.publish_generated, song.id, lines, settings.system_author_id,
        )
        return RegenerateResult(
            outcome="ok",
            message=f"Published version {version.version_number}",
            song_name=song.name,
            line_count=len(lines),
            timed_ratio=round(ratio, 2),
            version_id=version.id,
        )

    async def _preflight_audio(self) -> None:
        sample = await asyncio.to_thread(self._catalog.sample_playable_song)
        if sample is None or not sample.file_path:
            return
        if not await check_audio_url(build_audio_url(sample.file_path)):
            self._state.log(
                f"Audio check failed for sample song '{sample.name}'; continuing anyway",
                logging.WARNING,
            )


@lru_cache
def get_pipeline() -> LyricsPipeline:
    """The process-wide pipeline instance."""
    session_factory = get_session_factory()
    return LyricsPipeline(CatalogStore(session_factory), VersioningService(session_factory))


def trigger_after_login(user_id: str, pipeline: LyricsPipeline | None = None) -> bool:
    """Login side effect: start a full run unless one is already going."""
    return (pipeline or get_pipeline()).trigger(f"login:{user_id}")
