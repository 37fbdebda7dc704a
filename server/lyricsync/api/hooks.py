from fastapi import APIRouter, Depends

from lyricsync.models.pipeline import LoginHookRequest
from lyricsync.services.pipeline import LyricsPipeline, get_pipeline, trigger_after_login

router = APIRouter()


@router.post("/login", status_code=202)
async def on_login(
    request: LoginHookRequest, pipeline: LyricsPipeline = Depends(get_pipeline),
) -> dict:
    """Called by the auth service after a successful login. Never fails the login."""
    started = trigger_after_login(request.user_id, pipeline)
    return {"started": started}
