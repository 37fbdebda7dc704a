"""AssemblyAI transcription client: word-level timestamps for an audio URL.

Transcription is asynchronous on the provider side: submit the audio URL,
then poll the transcript until it completes, errors, or the wait budget
(five minutes by default) runs out.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from lyricsync.config import settings
from lyricsync.exceptions import ConfigurationError, TranscriptionError
from lyricsync.models.transcript import Transcript, TranscriptWord
from lyricsync.services.retry import with_retry

logger = logging.getLogger(__name__)


def _parse_transcript(data: dict[str, Any]) -> Transcript:
    words = [
        TranscriptWord(
            text=w.get("text", ""),
            start_ms=int(w.get("start", 0)),
            end_ms=int(w.get("end", 0)),
            confidence=float(w.get("confidence", 0.0)),
        )
        for w in data.get("words") or []
    ]
    return Transcript(
        id=data["id"],
        status=data.get("status", "queued"),
        words=words,
        text=data.get("text"),
        error=data.get("error"),
    )


class TranscriptionService:
    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self._http = http

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.asr_timeout_seconds)
        return self._http

    def _headers(self) -> dict[str, str]:
        # Read lazily so a key added to the environment after import is honoured
        if not settings.assemblyai_api_key:
            raise ConfigurationError("ASSEMBLYAI_API_KEY is not set")
        return {"Authorization": settings.assemblyai_api_key}

    async def submit(self, audio_url: str) -> str:
        """Queue a transcription job and return its id."""
        headers = self._headers()
        client = self._client()

        async def _post() -> httpx.Response:
            resp = await client.post(
                f"{settings.assemblyai_api_base}/transcript",
                headers=headers,
                json={"audio_url": audio_url, "language_code": "en"},
            )
            resp.raise_for_status()
            return resp

        resp = await with_retry(_post, description="AssemblyAI submit")
        transcript_id = resp.json()["id"]
        logger.info("Transcription submitted: id=%s", transcript_id)
        return transcript_id

    async def poll(self, transcript_id: str) -> Transcript:
        headers = self._headers()
        client = self._client()

        async def _get() -> httpx.Response:
            resp = await client.get(
                f"{settings.assemblyai_api_base}/transcript/{transcript_id}",
                headers=headers,
            )
            resp.raise_for_status()
            return resp

        resp = await with_retry(_get, description="AssemblyAI poll")
        return _parse_transcript(resp.json())

    async def wait_for_transcript(
        self,
        transcript_id: str,
        max_wait: float | None = None,
        interval: float | None = None,
    ) -> Transcript:
        """Poll until the transcript completes; raise on provider error or timeout."""
        max_wait = max_wait if max_wait is not None else settings.transcript_max_wait_seconds
        interval = interval if interval is not None else settings.transcript_poll_interval_seconds
        deadline = time.monotonic() + max_wait

        while True:
            transcript = await self.poll(transcript_id)
            if transcript.status == "completed":
                return transcript
            if transcript.status == "error":
                raise TranscriptionError(f"Transcription error: {transcript.error}")
            if time.monotonic() + interval > deadline:
                raise TranscriptionError(
                    f"Transcription {transcript_id} timed out after {max_wait:.0f}s"
                )
            await asyncio.sleep(interval)

    async def transcribe(self, audio_url: str) -> Transcript:
        transcript_id = await self.submit(audio_url)
        return await self.wait_for_transcript(transcript_id)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None
