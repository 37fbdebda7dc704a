"""Tests for admin pipeline endpoints and the login hook."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from lyricsync.api.deps import get_catalog, get_versioning
from lyricsync.exceptions import TranscriptionError
from lyricsync.main import app
from lyricsync.models.lyrics import Actor, TimedLine
from lyricsync.models.pipeline import RegenerateResult, RunSnapshot
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.pipeline import get_pipeline
from lyricsync.services.versioning import VersioningService

client = TestClient(app)

ADMIN = {"X-User-Id": "a1", "X-User-Role": "admin"}
USER = {"X-User-Id": "u1", "X-User-Role": "user"}


@pytest.fixture
def pipeline():
    mock = MagicMock()
    mock.trigger.return_value = True
    mock.status.return_value = RunSnapshot(running=True, mode="full", stage="retrieval")
    mock.logs.return_value = ["[t] Triggered (full) by admin:a1"]
    mock.regenerate = AsyncMock()
    return mock


@pytest.fixture(autouse=True)
def services(session_factory, pipeline):
    app.dependency_overrides[get_catalog] = lambda: CatalogStore(session_factory)
    app.dependency_overrides[get_versioning] = lambda: VersioningService(session_factory)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield
    app.dependency_overrides.clear()


class TestPipelineEndpoints:
    def test_requires_admin(self):
        assert client.post("/api/admin/lyrics/pipeline", json={}, headers=USER).status_code == 403
        assert client.get("/api/admin/lyrics/pipeline").status_code == 401

    def test_trigger(self, pipeline):
        response = client.post(
            "/api/admin/lyrics/pipeline", json={"mode": "alignment_force"}, headers=ADMIN,
        )
        assert response.status_code == 202
        assert response.json() == {"started": True, "mode": "alignment_force"}
        pipeline.trigger.assert_called_once_with("admin:a1", "alignment_force")

    def test_trigger_while_running(self, pipeline):
        pipeline.trigger.return_value = False
        response = client.post("/api/admin/lyrics/pipeline", json={}, headers=ADMIN)
        assert response.status_code == 202
        assert response.json()["started"] is False

    def test_invalid_mode(self):
        response = client.post("/api/admin/lyrics/pipeline", json={"mode": "all"}, headers=ADMIN)
        assert response.status_code == 422

    def test_status(self):
        data = client.get("/api/admin/lyrics/pipeline", headers=ADMIN).json()
        assert data["status"]["running"] is True
        assert data["status"]["stage"] == "retrieval"
        assert data["status"]["errorSamples"] == []
        assert data["logs"] == ["[t] Triggered (full) by admin:a1"]


class TestRegenerateEndpoint:
    @pytest.mark.parametrize(
        "outcome,status",
        [
            ("ok", 200),
            ("not_found", 404),
            ("no_audio", 400),
            ("insufficient_lyrics", 400),
            ("no_words", 422),
            ("low_confidence", 422),
            ("not_configured", 503),
        ],
    )
    def test_outcome_status_codes(self, pipeline, outcome, status):
        pipeline.regenerate.return_value = RegenerateResult(outcome=outcome, message="msg")

        response = client.post(
            "/api/admin/lyrics/regenerate", json={"songId": "s1"}, headers=ADMIN,
        )

        assert response.status_code == status
        assert response.json()["outcome"] == outcome
        pipeline.regenerate.assert_awaited_once_with("s1")

    def test_transcription_failure(self, pipeline):
        pipeline.regenerate.side_effect = TranscriptionError("Transcription error: bad audio")
        response = client.post(
            "/api/admin/lyrics/regenerate", json={"songId": "s1"}, headers=ADMIN,
        )
        assert response.status_code == 502
        assert "bad audio" in response.json()["detail"]


class TestCoverageAndPending:
    def test_coverage(self, add_song, monkeypatch):
        monkeypatch.setattr("lyricsync.config.settings.genius_access_token", "tok")
        monkeypatch.setattr("lyricsync.config.settings.assemblyai_api_key", "")
        add_song(raw_lyrics="some lyrics that are long enough")
        add_song()

        data = client.get("/api/admin/lyrics/coverage", headers=ADMIN).json()

        assert data["totalSongs"] == 2
        assert data["withRawLyrics"] == 1
        assert data["eligible"] == 1
        assert data["hasSearchKey"] is True
        assert data["hasAsrKey"] is False

    def test_pending(self, add_song, session_factory):
        versioning = VersioningService(session_factory)
        song_id = add_song(raw_lyrics="line")
        lines = [TimedLine(id="l1", start_ms=500, end_ms=900, text="line", confidence=1.0)]
        draft = versioning.create_draft(song_id, "u1", lyrics_data=lines)
        versioning.submit(song_id, draft.id, Actor(user_id="u1"))

        data = client.get("/api/admin/lyrics/pending", headers=ADMIN).json()
        assert [v["id"] for v in data["versions"]] == [draft.id]


class TestLoginHook:
    def test_login_triggers_pipeline(self, pipeline):
        response = client.post("/api/hooks/login", json={"userId": "u1"})
        assert response.status_code == 202
        assert response.json() == {"started": True}
        pipeline.trigger.assert_called_once_with("login:u1")

    def test_login_while_running_is_not_an_error(self, pipeline):
        pipeline.trigger.return_value = False
        response = client.post("/api/hooks/login", json={"userId": "u1"})
        assert response.status_code == 202
        assert response.json() == {"started": False}


class TestHealth:
    def test_health(self):
        assert client.get("/api/health").json() == {"status": "ok"}
