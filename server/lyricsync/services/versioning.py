"""Lyrics version lifecycle: draft -> pending_review/approved -> canonical.

At most one version per song is canonical. Every transition that sets the
canonical flag clears the previous one in the same transaction, after
locking the song row, so no reader can observe zero or two canonical
versions mid-change.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from lyricsync.config import settings
from lyricsync.db.session import write_transaction
from lyricsync.db.tables import LyricsVersionRow, SongRow
from lyricsync.exceptions import (
    InsufficientTimingError,
    InvalidLyricsError,
    InvalidTransitionError,
    PermissionDeniedError,
    SongNotFoundError,
    VersionNotFoundError,
)
from lyricsync.models.lyrics import (
    Actor,
    LyricsSource,
    LyricsVersionData,
    SubmitResult,
    TimedLine,
)
from lyricsync.services.aligner import split_lyric_lines

logger = logging.getLogger(__name__)


def _to_version(row: LyricsVersionRow) -> LyricsVersionData:
    return LyricsVersionData(
        id=row.id,
        song_id=row.song_id,
        version_number=row.version_number,
        status=row.status,
        is_canonical=row.is_canonical,
        source=row.source,
        author_id=row.author_id,
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        review_notes=row.review_notes,
        created_at=row.created_at,
        lyrics_data=[TimedLine.model_validate(line) for line in row.lyrics_data or []],
    )


def _dump_lines(lines: list[TimedLine]) -> list[dict]:
    return [line.model_dump() for line in lines]


def untimed_lines_from_raw(raw_lyrics: str) -> list[TimedLine]:
    return [
        TimedLine(id=f"l{i}", start_ms=0, text=text, confidence=0.0)
        for i, text in enumerate(split_lyric_lines(raw_lyrics), start=1)
    ]


def count_timed(lines: list[TimedLine]) -> int:
    return sum(1 for line in lines if line.start_ms > 0)


def review_warnings(lines: list[TimedLine], max_line_ms: int) -> list[str]:
    """Non-blocking issues for the reviewer: overlong lines and overlaps."""
    warnings: list[str] = []
    for line in lines:
        if line.end_ms is not None and line.end_ms - line.start_ms > max_line_ms:
            warnings.append(
                f'Line "{line.text[:30]}" exceeds {max_line_ms // 1000} seconds'
            )

    timed = sorted((line for line in lines if line.start_ms > 0), key=lambda line: line.start_ms)
    for prev, cur in zip(timed, timed[1:]):
        prev_end = prev.end_ms if prev.end_ms is not None else prev.start_ms
        if cur.start_ms < prev_end:
            warnings.append(f'Overlap detected near "{cur.text[:30]}"')
    return warnings


class VersioningService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        min_timed_ratio: float | None = None,
        max_line_duration_ms: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.min_timed_ratio = (
            min_timed_ratio if min_timed_ratio is not None else settings.submit_min_timed_ratio
        )
        self.max_line_duration_ms = max_line_duration_ms or settings.max_line_duration_ms

    # ── Reads ────────────────────────────────────────────────────────────

    def get_canonical(self, song_id: str) -> LyricsVersionData | None:
        """The canonical version, or the newest approved one if none is canonical."""
        stmt = (
            select(LyricsVersionRow)
            .where(
                LyricsVersionRow.song_id == song_id,
                (LyricsVersionRow.is_canonical.is_(True)) | (LyricsVersionRow.status == "approved"),
            )
            .order_by(LyricsVersionRow.is_canonical.desc(), LyricsVersionRow.version_number.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_version(row) if row else None

    def list_versions(self, song_id: str) -> list[LyricsVersionData]:
        stmt = (
            select(LyricsVersionRow)
            .where(LyricsVersionRow.song_id == song_id)
            .order_by(LyricsVersionRow.version_number.desc())
        )
        with self._session_factory() as session:
            return [_to_version(row) for row in session.scalars(stmt)]

    def get_version(self, song_id: str, version_id: str) -> LyricsVersionData:
        with self._session_factory() as session:
            return _to_version(self._load_version(session, song_id, version_id))

    def list_pending(self) -> list[LyricsVersionData]:
        stmt = (
            select(LyricsVersionRow)
            .where(LyricsVersionRow.status == "pending_review")
            .order_by(LyricsVersionRow.created_at)
        )
        with self._session_factory() as session:
            return [_to_version(row) for row in session.scalars(stmt)]

    # ── Transitions ──────────────────────────────────────────────────────

    def create_draft(
        self,
        song_id: str,
        author_id: str,
        lyrics_data: list[TimedLine] | None = None,
        source: LyricsSource = "manual",
        import_from_raw: bool = False,
    ) -> LyricsVersionData:
        with write_transaction(self._session_factory) as session:
            song = self._lock_song(session, song_id)

            if import_from_raw:
                if not song.raw_lyrics.strip():
                    raise InvalidLyricsError("This song has no raw lyrics to import")
                lines = untimed_lines_from_raw(song.raw_lyrics)
                source = "imported_api"
            elif lyrics_data:
                lines = lyrics_data
            else:
                raise InvalidLyricsError("Provide lyricsData or set importFromRaw")

            row = LyricsVersionRow(
                song_id=song_id,
                author_id=author_id,
                version_number=self._next_version_number(session, song_id),
                status="draft",
                source=source,
                lyrics_data=_dump_lines(lines),
                is_canonical=False,
            )
            session.add(row)
            session.flush()
            return _to_version(row)

    def update_draft(
        self, song_id: str, version_id: str, actor: Actor, lyrics_data: list[TimedLine],
    ) -> LyricsVersionData:
        with write_transaction(self._session_factory) as session:
            row = self._load_version(session, song_id, version_id, lock=True)
            if row.status != "draft":
                raise InvalidTransitionError("Can only edit draft versions")
            self._check_author(row, actor, "edit")
            row.lyrics_data = _dump_lines(lyrics_data)
            session.flush()
            return _to_version(row)

    def submit(self, song_id: str, version_id: str, actor: Actor) -> SubmitResult:
        """Submit a draft; privileged authors publish directly."""
        with write_transaction(self._session_factory) as session:
            self._lock_song(session, song_id)
            row = self._load_version(session, song_id, version_id)
            if row.status != "draft":
                raise InvalidTransitionError("Can only submit drafts")
            self._check_author(row, actor, "submit")

            lines = [TimedLine.model_validate(line) for line in row.lyrics_data or []]
            timed = count_timed(lines)
            if not lines or timed / len(lines) < self.min_timed_ratio:
                raise InsufficientTimingError(timed, len(lines), self.min_timed_ratio)

            warnings = review_warnings(lines, self.max_line_duration_ms)

            if actor.is_privileged:
                self._make_canonical(session, row, actor.user_id, notes=None)
                logger.info(
                    "Version %s of song %s auto-approved for %s (%s)",
                    row.version_number, song_id, actor.user_id, actor.role,
                )
                return SubmitResult(
                    status="approved", is_canonical=True, auto_approved=True, warnings=warnings,
                )

            row.status = "pending_review"
            return SubmitResult(
                status="pending_review", is_canonical=False, auto_approved=False, warnings=warnings,
            )

    def approve(
        self, song_id: str, version_id: str, reviewer_id: str, notes: str | None = None,
    ) -> LyricsVersionData:
        with write_transaction(self._session_factory) as session:
            self._lock_song(session, song_id)
            row = self._load_version(session, song_id, version_id)
            if row.status != "pending_review":
                raise InvalidTransitionError("Can only approve pending submissions")
            self._make_canonical(session, row, reviewer_id, notes)
            session.flush()
            return _to_version(row)

    def reject(
        self, song_id: str, version_id: str, reviewer_id: str, notes: str | None = None,
    ) -> LyricsVersionData:
        with write_transaction(self._session_factory) as session:
            row = self._load_version(session, song_id, version_id, lock=True)
            if row.status != "pending_review":
                raise InvalidTransitionError("Can only reject pending submissions")
            row.status = "rejected"
            row.reviewed_by = reviewer_id
            row.reviewed_at = datetime.now(UTC)
            row.review_notes = notes or "Rejected by reviewer"
            session.flush()
            return _to_version(row)

    def revert(self, song_id: str, version_id: str, reviewer_id: str) -> LyricsVersionData:
        """Make an earlier approved version canonical again."""
        with write_transaction(self._session_factory) as session:
            self._lock_song(session, song_id)
            row = self._load_version(session, song_id, version_id)
            if row.status != "approved" or row.is_canonical:
                raise InvalidTransitionError(
                    "Can only revert to a non-canonical approved version"
                )
            self._make_canonical(
                session, row, reviewer_id, notes=f"Reverted to version {row.version_number}",
            )
            session.flush()
            return _to_version(row)

    def publish_generated(
        self, song_id: str, lines: list[TimedLine], author_id: str,
    ) -> LyricsVersionData:
        """Create an auto-generated version and make it canonical in one transaction."""
        if not lines:
            raise InvalidLyricsError("No timed lines to publish")
        with write_transaction(self._session_factory) as session:
            self._lock_song(session, song_id)
            row = LyricsVersionRow(
                song_id=song_id,
                author_id=author_id,
                version_number=self._next_version_number(session, song_id),
                status="draft",
                source="auto_generated",
                lyrics_data=_dump_lines(lines),
                is_canonical=False,
            )
            session.add(row)
            session.flush()
            self._make_canonical(session, row, author_id, notes=None)
            session.flush()
            return _to_version(row)

    # ── Internals ────────────────────────────────────────────────────────

    def _lock_song(self, session: Session, song_id: str) -> SongRow:
        song = session.scalars(
            select(SongRow).where(SongRow.id == song_id).with_for_update()
        ).first()
        if song is None:
            raise SongNotFoundError(f"Song {song_id} not found")
        return song

    def _load_version(
        self, session: Session, song_id: str, version_id: str, lock: bool = False,
    ) -> LyricsVersionRow:
        stmt = select(LyricsVersionRow).where(
            LyricsVersionRow.id == version_id, LyricsVersionRow.song_id == song_id
        )
        if lock:
            stmt = stmt.with_for_update()
        row = session.scalars(stmt).first()
        if row is None:
            raise VersionNotFoundError(f"Version {version_id} not found")
        return row

    def _next_version_number(self, session: Session, song_id: str) -> int:
        current = session.scalar(
            select(func.max(LyricsVersionRow.version_number)).where(
                LyricsVersionRow.song_id == song_id
            )
        )
        return (current or 0) + 1

    def _check_author(self, row: LyricsVersionRow, actor: Actor, action: str) -> None:
        if row.author_id != actor.user_id and actor.role != "admin":
            raise PermissionDeniedError(f"Can only {action} your own drafts")

    def _make_canonical(
        self, session: Session, row: LyricsVersionRow, reviewer_id: str, notes: str | None,
    ) -> None:
        # Clear first so the one-canonical index never sees two rows
        session.execute(
            update(LyricsVersionRow)
            .where(
                LyricsVersionRow.song_id == row.song_id,
                LyricsVersionRow.is_canonical.is_(True),
                LyricsVersionRow.id != row.id,
            )
            .values(is_canonical=False)
            .execution_options(synchronize_session="fetch")
        )
        row.status = "approved"
        row.is_canonical = True
        row.reviewed_by = reviewer_id
        row.reviewed_at = datetime.now(UTC)
        if notes is not None:
            row.review_notes = notes
