"""Tests for the catalog-wide lyrics pipeline."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lyricsync.exceptions import TranscriptionError
from lyricsync.models.lyrics import Actor, RetrievedLyrics, TimedLine
from lyricsync.models.transcript import Transcript, TranscriptWord
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.pipeline import LyricsPipeline, run_queue, trigger_after_login
from lyricsync.services.run_state import RunState
from lyricsync.services.versioning import VersioningService

LYRICS = (
    "I still see your shadows in my room\n"
    "Can't take back the love that I gave you\n"
    "It's to the point where I love and I hate you\n"
    "And I cannot change you so I must replace you"
)


def _transcript_for(text: str) -> Transcript:
    tokens = text.lower().replace(",", "").split()
    words = [
        TranscriptWord(text=tok, start_ms=100 + i * 400, end_ms=400 + i * 400, confidence=0.9)
        for i, tok in enumerate(tokens)
    ]
    return Transcript(id="t1", status="completed", words=words)


NOISE = Transcript(
    id="t2",
    status="completed",
    words=[TranscriptWord(text="zzz", start_ms=i * 100, end_ms=i * 100 + 50) for i in range(30)],
)


@pytest.fixture(autouse=True)
def audio_reachable():
    with patch("lyricsync.services.pipeline.check_audio_url", new=AsyncMock(return_value=True)) as m:
        yield m


@pytest.fixture
def retriever():
    mock = AsyncMock()
    mock.fetch_lyrics.return_value = RetrievedLyrics(
        lyrics_text=LYRICS, source_url="https://genius.com/lucid", source_id=1,
    )
    return mock


@pytest.fixture
def transcription():
    mock = AsyncMock()
    mock.transcribe.return_value = _transcript_for(LYRICS)
    return mock


@pytest.fixture
def versioning(session_factory):
    return VersioningService(session_factory)


@pytest.fixture
def catalog(session_factory):
    return CatalogStore(session_factory)


@pytest.fixture
def pipeline(catalog, versioning, retriever, transcription):
    return LyricsPipeline(
        catalog, versioning, retriever=retriever, transcription=transcription, run_state=RunState(),
    )


class TestRunQueue:
    @pytest.mark.asyncio
    async def test_each_item_once_with_bounded_concurrency(self):
        seen: list[int] = []
        active = 0
        peak = 0

        async def handler(item: int) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            seen.append(item)
            active -= 1

        await run_queue(list(range(20)), 3, handler)

        assert sorted(seen) == list(range(20))
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_empty(self):
        handler = AsyncMock()
        await run_queue([], 4, handler)
        handler.assert_not_awaited()


class TestTrigger:
    @pytest.mark.asyncio
    async def test_second_trigger_refused_while_running(self, pipeline, configured):
        assert pipeline.trigger("login:u1") is True
        assert pipeline.trigger("login:u2") is False
        assert trigger_after_login("u3", pipeline) is False

        await pipeline.wait()

        status = pipeline.status()
        assert status.running is False
        assert status.stage == "done"
        assert status.trigger_reason == "login:u1"
        assert any("already in progress" in line for line in pipeline.logs())

    @pytest.mark.asyncio
    async def test_trigger_after_finish_starts_again(self, pipeline, configured):
        assert pipeline.trigger("first") is True
        await pipeline.wait()
        assert trigger_after_login("u1", pipeline) is True
        await pipeline.wait()
        assert pipeline.status().trigger_reason == "login:u1"

    @pytest.mark.asyncio
    async def test_run_refused_while_triggered_run_active(self, pipeline, configured):
        pipeline.trigger("first")
        assert await pipeline.run("second") is False
        await pipeline.wait()

    def test_trigger_without_running_loop(self, pipeline, catalog, retriever, add_song, configured):
        song_id = add_song()

        assert trigger_after_login("u1", pipeline) is True
        asyncio.run(pipeline.wait())

        assert pipeline.status().stage == "done"
        assert catalog.get_song(song_id).raw_lyrics == LYRICS
        retriever.close.assert_awaited_once()


class TestFullRun:
    @pytest.mark.asyncio
    async def test_retrieves_then_aligns(self, pipeline, catalog, versioning, add_song, configured):
        song_id = add_song("Lucid Dreams.mp3")

        assert await pipeline.run("test") is True

        song = catalog.get_song(song_id)
        assert song.raw_lyrics == LYRICS
        version = versioning.get_canonical(song_id)
        assert version is not None
        assert version.source == "auto_generated"
        assert version.author_id == "system"
        assert version.line_count == 4
        assert all(line.confidence > 0 for line in version.lyrics_data)

        status = pipeline.status()
        assert status.stage == "done"
        assert (status.retrieval.candidates, status.retrieval.succeeded) == (1, 1)
        assert (status.alignment.candidates, status.alignment.succeeded) == (1, 1)
        assert status.alignment.retimed == 0

    @pytest.mark.asyncio
    async def test_retrieval_never_overwrites(self, pipeline, retriever, catalog, add_song, configured):
        song_id = add_song(raw_lyrics="hand written lyrics that must stay")

        await pipeline.run("test", "retrieval_only")

        retriever.fetch_lyrics.assert_not_awaited()
        assert catalog.get_song(song_id).raw_lyrics == "hand written lyrics that must stay"

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing_to_do(self, pipeline, retriever, transcription, add_song, configured):
        add_song()
        await pipeline.run("first")
        await pipeline.run("second")

        assert retriever.fetch_lyrics.await_count == 1
        assert transcription.transcribe.await_count == 1
        assert pipeline.status().alignment.candidates == 0

    @pytest.mark.asyncio
    async def test_retrieval_miss_counted(self, pipeline, retriever, add_song, configured):
        retriever.fetch_lyrics.return_value = None
        add_song()

        await pipeline.run("test", "retrieval_only")

        stats = pipeline.status().retrieval
        assert (stats.processed, stats.succeeded, stats.failed) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_retrieval_error_does_not_stop_run(self, pipeline, retriever, add_song, configured):
        retriever.fetch_lyrics.side_effect = [RuntimeError("boom"), retriever.fetch_lyrics.return_value]
        add_song("A")
        add_song("B")

        await pipeline.run("test", "retrieval_only")

        status = pipeline.status()
        assert status.stage == "done"
        assert status.retrieval.processed == 2
        assert status.retrieval.succeeded == 1
        assert any("boom" in e for e in status.error_samples)


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_missing_search_key_skips_retrieval(self, pipeline, retriever, add_song, monkeypatch, configured):
        monkeypatch.setattr("lyricsync.config.settings.genius_access_token", "")
        add_song()

        await pipeline.run("test")

        retriever.fetch_lyrics.assert_not_awaited()
        assert pipeline.status().stage == "done"
        assert any("skipping retrieval stage" in line for line in pipeline.logs())

    @pytest.mark.asyncio
    async def test_missing_asr_key_skips_alignment(self, pipeline, transcription, add_song, monkeypatch, configured):
        monkeypatch.setattr("lyricsync.config.settings.assemblyai_api_key", "")
        add_song(raw_lyrics=LYRICS)

        await pipeline.run("test", "alignment_only")

        transcription.transcribe.assert_not_awaited()
        assert any("skipping alignment stage" in line for line in pipeline.logs())


class TestAlignmentStage:
    @pytest.mark.asyncio
    async def test_low_confidence_not_published(self, pipeline, transcription, versioning, add_song, configured):
        transcription.transcribe.return_value = NOISE
        song_id = add_song(raw_lyrics=LYRICS)

        await pipeline.run("test", "alignment_only")

        assert versioning.list_versions(song_id) == []
        stats = pipeline.status().alignment
        assert (stats.processed, stats.succeeded, stats.skipped) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_no_words_skipped(self, pipeline, transcription, versioning, add_song, configured):
        transcription.transcribe.return_value = Transcript(id="t", status="completed", words=[])
        song_id = add_song(raw_lyrics=LYRICS)

        await pipeline.run("test", "alignment_only")

        assert versioning.list_versions(song_id) == []
        assert pipeline.status().alignment.skipped == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, pipeline, transcription, versioning, add_song, configured):
        transcription.transcribe.side_effect = [
            TranscriptionError("Transcription error: bad audio"),
            _transcript_for(LYRICS),
        ]
        add_song("A", raw_lyrics=LYRICS)
        add_song("B", raw_lyrics=LYRICS)

        await pipeline.run("test", "alignment_only")

        status = pipeline.status()
        assert status.stage == "done"
        assert status.alignment.failed == 1
        assert status.alignment.succeeded == 1
        assert any("bad audio" in e for e in status.error_samples)

    @pytest.mark.asyncio
    async def test_force_retimes_auto_generated_only(self, pipeline, transcription, versioning, add_song, configured):
        lines = [TimedLine(id="l1", start_ms=100, end_ms=900, text="old", confidence=0.9)]
        auto = add_song("Auto", raw_lyrics=LYRICS)
        versioning.publish_generated(auto, lines, "system")
        curated = add_song("Curated", raw_lyrics=LYRICS)
        draft = versioning.create_draft(curated, "a1", lyrics_data=lines)
        versioning.submit(curated, draft.id, Actor(user_id="a1", role="admin"))

        await pipeline.run("test", "alignment_force")

        assert transcription.transcribe.await_count == 1
        assert versioning.get_canonical(auto).version_number == 2
        assert versioning.get_canonical(curated).id == draft.id
        assert pipeline.status().alignment.retimed == 1

    @pytest.mark.asyncio
    async def test_audio_preflight_failure_only_warns(self, pipeline, audio_reachable, add_song, configured):
        audio_reachable.return_value = False
        add_song(raw_lyrics=LYRICS)

        await pipeline.run("test", "alignment_only")

        assert pipeline.status().alignment.succeeded == 1
        assert any("Audio check failed" in line for line in pipeline.logs())

    @pytest.mark.asyncio
    async def test_unexpected_fault_ends_in_error(self, pipeline, catalog, add_song, monkeypatch, configured):
        monkeypatch.setattr(catalog, "retrieval_candidates", MagicMock(side_effect=RuntimeError("db down")))

        await pipeline.run("test")

        status = pipeline.status()
        assert status.running is False
        assert status.stage == "error"
        assert "Run failed: db down" in status.error_samples


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_not_configured(self, pipeline, add_song, monkeypatch):
        monkeypatch.setattr("lyricsync.config.settings.assemblyai_api_key", "")
        result = await pipeline.regenerate(add_song(raw_lyrics=LYRICS))
        assert result.outcome == "not_configured"

    @pytest.mark.asyncio
    async def test_not_found(self, pipeline, configured):
        assert (await pipeline.regenerate("missing")).outcome == "not_found"

    @pytest.mark.asyncio
    async def test_no_audio_file(self, pipeline, add_song, configured):
        result = await pipeline.regenerate(add_song(raw_lyrics=LYRICS, file_path=None))
        assert result.outcome == "no_audio"

    @pytest.mark.asyncio
    async def test_audio_unreachable(self, pipeline, audio_reachable, add_song, configured):
        audio_reachable.return_value = False
        result = await pipeline.regenerate(add_song(raw_lyrics=LYRICS))
        assert result.outcome == "no_audio"

    @pytest.mark.asyncio
    async def test_insufficient_lyrics(self, pipeline, add_song, configured):
        result = await pipeline.regenerate(add_song(raw_lyrics="la la"))
        assert result.outcome == "insufficient_lyrics"

    @pytest.mark.asyncio
    async def test_low_confidence(self, pipeline, transcription, add_song, configured):
        transcription.transcribe.return_value = NOISE
        result = await pipeline.regenerate(add_song(raw_lyrics=LYRICS))
        assert result.outcome == "low_confidence"
        assert result.line_count == 4
        assert result.timed_ratio == 0.0

    @pytest.mark.asyncio
    async def test_ok_replaces_canonical(self, pipeline, versioning, add_song, configured):
        song_id = add_song("Lucid Dreams", raw_lyrics=LYRICS)
        first = await pipeline.regenerate(song_id)
        second = await pipeline.regenerate(song_id)

        assert first.outcome == second.outcome == "ok"
        assert second.song_name == "Lucid Dreams"
        assert second.timed_ratio == 1.0
        assert versioning.get_canonical(song_id).id == second.version_id
