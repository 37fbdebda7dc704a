import asyncio
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from lyricsync.api.deps import get_catalog, get_versioning, require_admin
from lyricsync.config import settings
from lyricsync.exceptions import TranscriptionError
from lyricsync.models.lyrics import Actor
from lyricsync.models.pipeline import RegenerateRequest, TriggerRequest
from lyricsync.services.catalog import CatalogStore
from lyricsync.services.pipeline import LyricsPipeline, get_pipeline
from lyricsync.services.versioning import VersioningService

router = APIRouter()
logger = logging.getLogger(__name__)

_OUTCOME_STATUS = {
    "ok": 200,
    "not_found": 404,
    "no_audio": 400,
    "insufficient_lyrics": 400,
    "no_words": 422,
    "low_confidence": 422,
    "not_configured": 503,
}


@router.post("/pipeline", status_code=202)
async def trigger_pipeline(
    request: TriggerRequest,
    actor: Actor = Depends(require_admin),
    pipeline: LyricsPipeline = Depends(get_pipeline),
) -> dict:
    """Start a catalog run. started=False means one was already running."""
    started = pipeline.trigger(f"admin:{actor.user_id}", request.mode)
    return {"started": started, "mode": request.mode}


@router.get("/pipeline")
async def pipeline_status(
    _actor: Actor = Depends(require_admin),
    pipeline: LyricsPipeline = Depends(get_pipeline),
) -> dict:
    return {
        "status": pipeline.status().model_dump(by_alias=True, mode="json"),
        "logs": pipeline.logs(),
    }


@router.post("/regenerate")
async def regenerate_song(
    request: RegenerateRequest,
    _actor: Actor = Depends(require_admin),
    pipeline: LyricsPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Time one song now, replacing its canonical version."""
    try:
        result = await pipeline.regenerate(request.song_id)
    except (TranscriptionError, httpx.HTTPError) as e:
        logger.exception("Regenerate failed for song %s", request.song_id)
        raise HTTPException(status_code=502, detail=f"Transcription failed: {e}") from e

    return JSONResponse(
        status_code=_OUTCOME_STATUS[result.outcome],
        content=result.model_dump(by_alias=True),
    )


@router.get("/coverage")
async def coverage(
    _actor: Actor = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog),
) -> dict:
    stats = await asyncio.to_thread(
        catalog.coverage,
        settings.eligible_category_list,
        bool(settings.genius_access_token),
        bool(settings.assemblyai_api_key),
    )
    return stats.model_dump(by_alias=True)


@router.get("/pending")
def pending_reviews(
    _actor: Actor = Depends(require_admin),
    versioning: VersioningService = Depends(get_versioning),
) -> dict:
    pending = versioning.list_pending()
    return {"versions": [v.model_dump(by_alias=True) for v in pending]}
