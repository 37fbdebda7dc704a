"""Shared fixtures: a throwaway SQLite catalog per test."""

import itertools

import pytest
from sqlalchemy.orm import Session, sessionmaker

from lyricsync.db.session import create_db_engine, create_session_factory, init_db, write_transaction
from lyricsync.db.tables import SongRow

_external_ids = itertools.count(1)


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def add_song(session_factory):
    """Insert a song row and return its id."""

    def _add(
        name: str = "Lucid Dreams",
        raw_lyrics: str = "",
        file_path: str | None = "Compilation/Lucid Dreams.mp3",
        category: str = "released",
        is_available: bool = True,
        duration_ms: int | None = None,
    ) -> str:
        with write_transaction(session_factory) as session:
            row = SongRow(
                external_id=next(_external_ids),
                name=name,
                raw_lyrics=raw_lyrics,
                file_path=file_path,
                category=category,
                is_available=is_available,
                duration_ms=duration_ms,
            )
            session.add(row)
            session.flush()
            return row.id

    return _add


@pytest.fixture
def configured(monkeypatch):
    """Both external credentials present."""
    monkeypatch.setattr("lyricsync.config.settings.genius_access_token", "genius-token")
    monkeypatch.setattr("lyricsync.config.settings.assemblyai_api_key", "asr-key")
