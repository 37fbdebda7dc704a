"""Catalog reads and writes used by the lyrics pipeline."""

import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from lyricsync.db.session import write_transaction
from lyricsync.db.tables import LyricsVersionRow, SongRow
from lyricsync.models.catalog import AlignmentCandidate, SongData
from lyricsync.models.pipeline import CoverageStats

logger = logging.getLogger(__name__)

# Used for songs without a known duration when estimating ASR hours
_DEFAULT_DURATION_MS = 210_000


def _to_song(row: SongRow) -> SongData:
    return SongData(
        id=row.id,
        external_id=row.external_id,
        name=row.name,
        category=row.category,
        file_path=row.file_path,
        raw_lyrics=row.raw_lyrics or "",
        is_available=row.is_available,
        duration_ms=row.duration_ms,
    )


def _has_audio():
    return SongRow.file_path.is_not(None) & (SongRow.file_path != "")


class CatalogStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get_song(self, song_id: str) -> SongData | None:
        with self._session_factory() as session:
            row = session.get(SongRow, song_id)
            return _to_song(row) if row else None

    def retrieval_candidates(self, categories: list[str], limit: int = 0) -> list[SongData]:
        """Songs with audio in an eligible category whose raw lyrics are still empty."""
        stmt = (
            select(SongRow)
            .where(SongRow.raw_lyrics == "", _has_audio(), SongRow.category.in_(categories))
            .order_by(SongRow.name)
        )
        if limit > 0:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [_to_song(row) for row in session.scalars(stmt)]

    def alignment_candidates(
        self,
        categories: list[str],
        min_chars: int,
        force: bool = False,
        limit: int = 0,
    ) -> list[AlignmentCandidate]:
        """Songs ready for timing.

        Without ``force`` only songs lacking an approved/canonical version
        qualify. With ``force`` songs whose newest such version was
        auto-generated are re-timed too; human-curated versions never are.
        """
        songs_stmt = (
            select(SongRow)
            .where(
                _has_audio(),
                SongRow.raw_lyrics != "",
                SongRow.is_available.is_(True),
                SongRow.category.in_(categories),
            )
            .order_by(SongRow.name)
        )
        versions_stmt = (
            select(LyricsVersionRow.song_id, LyricsVersionRow.source)
            .where(or_(LyricsVersionRow.is_canonical.is_(True), LyricsVersionRow.status == "approved"))
            .order_by(
                LyricsVersionRow.song_id,
                LyricsVersionRow.is_canonical.desc(),
                LyricsVersionRow.version_number.desc(),
            )
        )

        with self._session_factory() as session:
            songs = [_to_song(row) for row in session.scalars(songs_stmt)]
            newest_source: dict[str, str] = {}
            for song_id, source in session.execute(versions_stmt):
                newest_source.setdefault(song_id, source)

        candidates: list[AlignmentCandidate] = []
        for song in songs:
            if len(song.raw_lyrics.strip()) < min_chars:
                continue
            source = newest_source.get(song.id)
            if source is None or (force and source == "auto_generated"):
                candidates.append(AlignmentCandidate(song=song, existing_source=source))
            if 0 < limit <= len(candidates):
                break
        return candidates

    def set_raw_lyrics(self, song_id: str, lyrics: str, provenance: str) -> bool:
        """Store retrieved lyrics unless the song already has some. Returns True if written."""
        stmt = (
            update(SongRow)
            .where(SongRow.id == song_id, SongRow.raw_lyrics == "")
            .values(raw_lyrics=lyrics, additional_info=provenance)
        )
        with write_transaction(self._session_factory) as session:
            written = session.execute(stmt).rowcount > 0
        if not written:
            logger.info("Song %s already has raw lyrics, not overwritten", song_id)
        return written

    def sample_playable_song(self) -> SongData | None:
        stmt = select(SongRow).where(_has_audio(), SongRow.is_available.is_(True)).limit(1)
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_song(row) if row else None

    def coverage(self, categories: list[str], has_search_key: bool, has_asr_key: bool) -> CoverageStats:
        canonical_songs = (
            select(LyricsVersionRow.song_id).where(LyricsVersionRow.is_canonical.is_(True))
        )
        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(SongRow)) or 0
            with_audio = session.scalar(
                select(func.count()).select_from(SongRow).where(
                    _has_audio(), SongRow.is_available.is_(True)
                )
            ) or 0
            with_raw = session.scalar(
                select(func.count()).select_from(SongRow).where(SongRow.raw_lyrics != "")
            ) or 0
            with_timed = session.scalar(
                select(func.count(func.distinct(LyricsVersionRow.song_id))).where(
                    LyricsVersionRow.is_canonical.is_(True)
                )
            ) or 0
            durations = session.scalars(
                select(SongRow.duration_ms).where(
                    _has_audio(),
                    SongRow.raw_lyrics != "",
                    SongRow.is_available.is_(True),
                    SongRow.category.in_(categories),
                    SongRow.id.not_in(canonical_songs),
                )
            ).all()

        total_ms = sum(d or _DEFAULT_DURATION_MS for d in durations)
        return CoverageStats(
            total_songs=total,
            with_audio=with_audio,
            with_raw_lyrics=with_raw,
            with_timed_lyrics=with_timed,
            eligible=len(durations),
            estimated_hours=round(total_ms / 3_600_000, 1),
            has_search_key=has_search_key,
            has_asr_key=has_asr_key,
        )
