"""Audio URL resolution for catalog file paths."""

import logging
from urllib.parse import quote

import httpx

from lyricsync.config import settings

logger = logging.getLogger(__name__)


def build_audio_url(file_path: str) -> str:
    """Public download URL the ASR provider can fetch for a catalog file path."""
    base = settings.catalog_api_base.rstrip("/")
    return f"{base}/files/download/?path={quote(file_path, safe='')}"


async def check_audio_url(url: str, http: httpx.AsyncClient | None = None) -> bool:
    """HEAD the URL; 200 and 206 both mean the audio is streamable."""
    client = http or httpx.AsyncClient(timeout=settings.audio_check_timeout_seconds)
    try:
        resp = await client.head(url, follow_redirects=True)
        if resp.status_code in (200, 206):
            return True
        logger.warning("Audio HEAD returned %d for %s", resp.status_code, url)
        return False
    except httpx.HTTPError as e:
        logger.warning("Audio check failed for %s: %s", url, e)
        return False
    finally:
        if http is None:
            await client.aclose()
