import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from lyricsync.api.deps import get_actor, get_catalog, get_retriever, get_versioning, require_admin
from lyricsync.exceptions import (
    InsufficientTimingError,
    InvalidLyricsError,
    InvalidTransitionError,
    LyricSyncError,
    PermissionDeniedError,
    SongNotFoundError,
    VersionNotFoundError,
)
from lyricsync.models.lyrics import (
    Actor,
    CreateVersionRequest,
    ReviewRequest,
    UpdateDraftRequest,
)
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.lyrics_retriever import LyricsRetriever
from lyricsync.services.versioning import VersioningService, untimed_lines_from_raw

router = APIRouter()
logger = logging.getLogger(__name__)


def _http_error(exc: LyricSyncError) -> HTTPException:
    """Translate a rejected versioning operation into an HTTP error."""
    if isinstance(exc, (SongNotFoundError, VersionNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, InsufficientTimingError):
        return HTTPException(
            status_code=400,
            detail={"message": str(exc), "timed": exc.timed, "total": exc.total},
        )
    if isinstance(exc, (InvalidTransitionError, InvalidLyricsError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.get("/{song_id}/lyrics")
async def get_lyrics(
    song_id: str,
    catalog: CatalogStore = Depends(get_catalog),
    versioning: VersioningService = Depends(get_versioning),
    retriever: LyricsRetriever = Depends(get_retriever),
) -> dict:
    """Canonical timed lyrics, falling back to raw lyrics, then to a live lookup."""
    song = await asyncio.to_thread(catalog.get_song, song_id)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")

    version = await asyncio.to_thread(versioning.get_canonical, song_id)
    if version is not None:
        return {"songId": song_id, "source": "version", "version": version.model_dump(by_alias=True)}

    raw_lyrics = song.raw_lyrics
    source = "raw"
    if not raw_lyrics.strip():
        result = await retriever.fetch_lyrics(song.name)
        if result is None:
            raise HTTPException(status_code=404, detail="No lyrics available for this song")
        await asyncio.to_thread(
            catalog.set_raw_lyrics,
            song_id,
            result.lyrics_text,
            f"Lyrics source: Genius ({result.source_url})",
        )
        raw_lyrics = result.lyrics_text
        source = "retrieved"

    lines = untimed_lines_from_raw(raw_lyrics)
    return {
        "songId": song_id,
        "source": source,
        "rawLyrics": raw_lyrics,
        "lyricsData": [line.model_dump(by_alias=True) for line in lines],
    }


@router.get("/{song_id}/lyrics/versions")
def list_versions(
    song_id: str, versioning: VersioningService = Depends(get_versioning),
) -> dict:
    versions = versioning.list_versions(song_id)
    return {"versions": [v.model_dump(by_alias=True) for v in versions]}


@router.get("/{song_id}/lyrics/versions/{version_id}")
def get_version(
    song_id: str, version_id: str, versioning: VersioningService = Depends(get_versioning),
) -> dict:
    try:
        version = versioning.get_version(song_id, version_id)
    except LyricSyncError as e:
        raise _http_error(e) from e
    return version.model_dump(by_alias=True)


@router.post("/{song_id}/lyrics/versions", status_code=201)
def create_version(
    song_id: str,
    request: CreateVersionRequest,
    actor: Actor = Depends(get_actor),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    """Start a new draft, either from supplied lines or from the song's raw lyrics."""
    try:
        version = versioning.create_draft(
            song_id,
            actor.user_id,
            lyrics_data=request.lyrics_data,
            source=request.source,
            import_from_raw=request.import_from_raw,
        )
    except LyricSyncError as e:
        raise _http_error(e) from e
    return version.model_dump(by_alias=True)


@router.put("/{song_id}/lyrics/versions/{version_id}")
def update_version(
    song_id: str,
    version_id: str,
    request: UpdateDraftRequest,
    actor: Actor = Depends(get_actor),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    try:
        version = versioning.update_draft(song_id, version_id, actor, request.lyrics_data)
    except LyricSyncError as e:
        raise _http_error(e) from e
    return version.model_dump(by_alias=True)


@router.post("/{song_id}/lyrics/versions/{version_id}/submit")
def submit_version(
    song_id: str,
    version_id: str,
    actor: Actor = Depends(get_actor),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    try:
        result = versioning.submit(song_id, version_id, actor)
    except LyricSyncError as e:
        raise _http_error(e) from e
    return result.model_dump(by_alias=True)


@router.post("/{song_id}/lyrics/versions/{version_id}/approve")
def approve_version(
    song_id: str,
    version_id: str,
    request: ReviewRequest | None = None,
    actor: Actor = Depends(require_admin),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    notes = request.notes if request else None
    try:
        version = versioning.approve(song_id, version_id, actor.user_id, notes)
    except LyricSyncError as e:
        raise _http_error(e) from e
    logger.info("Version %s of song %s approved by %s", version_id, song_id, actor.user_id)
    return version.model_dump(by_alias=True)


@router.post("/{song_id}/lyrics/versions/{version_id}/reject")
def reject_version(
    song_id: str,
    version_id: str,
    request: ReviewRequest | None = None,
    actor: Actor = Depends(require_admin),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    notes = request.notes if request else None
    try:
        version = versioning.reject(song_id, version_id, actor.user_id, notes)
    except LyricSyncError as e:
        raise _http_error(e) from e
    return version.model_dump(by_alias=True)


@router.post("/{song_id}/lyrics/versions/{version_id}/revert")
def revert_version(
    song_id: str,
    version_id: str,
    actor: Actor = Depends(require_admin),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    try:
        version = versioning.revert(song_id, version_id, actor.user_id)
    except LyricSyncError as e:
        raise _http_error(e) from e
    return version.model_dump(by_alias=True)
