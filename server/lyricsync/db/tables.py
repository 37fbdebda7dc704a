"""SQLAlchemy tables for the catalog rows the lyrics pipeline reads and writes."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class SongRow(Base):
    __tablename__ = "songs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    external_id: Mapped[int] = mapped_column(Integer, unique=True)
    name: Mapped[str] = mapped_column(String(500))
    category: Mapped[str] = mapped_column(String(20), default="unreleased", index=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_lyrics: Mapped[str] = mapped_column(Text, default="")
    additional_info: Mapped[str] = mapped_column(Text, default="")
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    versions: Mapped[list["LyricsVersionRow"]] = relationship(
        back_populates="song", cascade="all, delete-orphan"
    )


class LyricsVersionRow(Base):
    __tablename__ = "lyrics_versions"
    __table_args__ = (
        UniqueConstraint("song_id", "version_number", name="uq_lyrics_versions_song_version"),
        Index("ix_lyrics_versions_song_canonical", "song_id", "is_canonical"),
        # One canonical version per song, enforced by the database itself
        Index(
            "uq_lyrics_versions_one_canonical",
            "song_id",
            unique=True,
            sqlite_where=text("is_canonical = 1"),
            postgresql_where=text("is_canonical"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    song_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("songs.id", ondelete="CASCADE"), index=True
    )
    author_id: Mapped[str] = mapped_column(String(36))
    version_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    source: Mapped[str] = mapped_column(String(20), default="manual")
    lyrics_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    is_canonical: Mapped[bool] = mapped_column(Boolean, default=False)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    song: Mapped[SongRow] = relationship(back_populates="versions")
