import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lyricsync.config import settings
from lyricsync.api import admin, hooks, lyrics
from lyricsync.api.deps import get_retriever
from lyricsync.db.session import get_session_factory
from lyricsync.services.pipeline import get_pipeline


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Creates the schema on first use
    get_session_factory()
    yield
    await get_pipeline().close()
    await get_retriever().close()


app = FastAPI(
    title="Lyrics Sync API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(lyrics.router, prefix="/api/songs", tags=["lyrics"])
app.include_router(admin.router, prefix="/api/admin/lyrics", tags=["admin"])
app.include_router(hooks.router, prefix="/api/hooks", tags=["hooks"])


@app.get("/api/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
