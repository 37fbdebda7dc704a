"""Shared router dependencies."""

from functools import lru_cache

from fastapi import Header, HTTPException

from lyricsync.db.session import get_session_factory
from lyricsync.models.lyrics import Actor
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.lyrics_retriever import LyricsRetriever
from lyricsync.services.versioning import VersioningService

_ROLES: set[str] = {"user", "trusted_contributor", "admin"}


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default="user"),
) -> Actor:
    """Caller identity from the X-User-Id / X-User-Role headers set by the auth proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    if x_user_role not in _ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_user_role}")
    return Actor(user_id=x_user_id, role=x_user_role)


def require_admin(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default="user"),
) -> Actor:
    actor = get_actor(x_user_id, x_user_role)
    if actor.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor


@lru_cache
def get_catalog() -> CatalogStore:
    return CatalogStore(get_session_factory())


@lru_cache
def get_versioning() -> VersioningService:
    return VersioningService(get_session_factory())


@lru_cache
def get_retriever() -> LyricsRetriever:
    return LyricsRetriever()
