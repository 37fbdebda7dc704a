"""Raw lyrics retrieval: Genius search with a cascade of query strategies."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx
import lyricsgenius
from rapidfuzz.distance import Levenshtein

from lyricsync.config import settings
from lyricsync.models.lyrics import RetrievedLyrics
from lyricsync.services.lyrics_extractors import LyricsExtractor, extract_lyrics
from lyricsync.services.retry import with_retry

logger = logging.getLogger(__name__)

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_EXTENSION_RE = re.compile(r"\.(mp3|wav|flac|m4a|ogg|aac|wma)$", re.IGNORECASE)
_BRACKETED_RE = re.compile(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}")
_CREDIT_SUFFIX_RE = re.compile(r"\s+(feat\.?|ft\.?|prod\.?)(\s+.*)?$", re.IGNORECASE)
# "with" marks a credit only after a dash: "Song - with X"
_WITH_CREDIT_RE = re.compile(r"\s+[-\u2013]\s+with\s+.*$", re.IGNORECASE)
_TRAILING_NUMBER_RE = re.compile(r"(\s+\d+)+$")


def normalize_title(title: str) -> str:
    """Strip file extensions, annotations, credits and trailing numbers."""
    cleaned = _EXTENSION_RE.sub("", title.strip())
    cleaned = _BRACKETED_RE.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = _WITH_CREDIT_RE.sub("", cleaned)
    cleaned = _CREDIT_SUFFIX_RE.sub("", cleaned)
    stripped = _TRAILING_NUMBER_RE.sub("", cleaned)
    # A title that is only a number keeps it
    if stripped.strip():
        cleaned = stripped
    return cleaned.strip(" -_.,")


def title_variants(title: str) -> list[str]:
    """Ordered, decreasingly specific search terms: full, first three words, first word."""
    cleaned = normalize_title(title) or title.strip()
    words = cleaned.split()
    variants: list[str] = []
    for candidate in (cleaned, " ".join(words[:3]), words[0] if words else ""):
        if candidate and candidate.lower() not in (v.lower() for v in variants):
            variants.append(candidate)
    return variants


def _squash(text: str) -> str:
    return re.sub(r"[\W_]", "", text.lower())


def title_similarity(a: str, b: str) -> float:
    """1.0 exact, 0.9 containment, else normalized Levenshtein on alphanumerics."""
    s1, s2 = _squash(a), _squash(b)
    if s1 == s2:
        return 1.0
    if len(s1) < 3 or len(s2) < 3:
        return 0.0
    if s1 in s2 or s2 in s1:
        return 0.9
    return Levenshtein.normalized_similarity(s1, s2)


def is_target_artist(name: str) -> bool:
    lower = name.strip().lower()
    if not lower:
        return False
    if lower in settings.collaborator_list:
        return True
    return any(alias in lower for alias in settings.artist_alias_list)


@dataclass(frozen=True)
class SearchStrategy:
    name: str
    query: str
    max_hits: int
    min_similarity: float
    # "full" searches only the cleaned title; "reduced" the shorter variants
    variants: str = "full"


DEFAULT_STRATEGIES: tuple[SearchStrategy, ...] = (
    SearchStrategy("artist", "{artist} {title}", 5, 0.6),
    SearchStrategy("title", "{title}", 5, 0.6),
    SearchStrategy("unreleased", "{artist} {title} unreleased", 3, 0.5),
    SearchStrategy("leak", "{artist} {title} leak", 3, 0.5),
    SearchStrategy("artist-reduced", "{artist} {title}", 3, 0.7, variants="reduced"),
)


def _hit_artists(result: dict[str, Any]) -> list[str]:
    names = [(result.get("primary_artist") or {}).get("name", "")]
    names.extend(a.get("name", "") for a in result.get("featured_artists") or [])
    return [n for n in names if n]


class LyricsRetriever:
    """Finds plain lyric text for a song title on Genius."""

    def __init__(
        self,
        genius_api: Any | None = None,
        http: httpx.AsyncClient | None = None,
        strategies: tuple[SearchStrategy, ...] = DEFAULT_STRATEGIES,
        extractors: list[LyricsExtractor] | None = None,
    ) -> None:
        self._genius_api = genius_api
        self._http = http
        self.strategies = strategies
        self.extractors = extractors

    def _api(self) -> Any:
        if self._genius_api is None:
            if not settings.genius_access_token:
                raise RuntimeError("GENIUS_ACCESS_TOKEN is not set")
            self._genius_api = lyricsgenius.API(
                settings.genius_access_token,
                timeout=settings.search_timeout_seconds,
                retries=settings.http_retry_attempts,
            )
        return self._genius_api

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=settings.scrape_timeout_seconds,
                headers=_BROWSER_HEADERS,
                follow_redirects=True,
            )
        return self._http

    async def fetch_lyrics(self, title: str) -> RetrievedLyrics | None:
        """Walk the strategy cascade; the first accepted, long-enough page wins."""
        if self._genius_api is None and not settings.genius_access_token:
            logger.warning("GENIUS_ACCESS_TOKEN not configured, skipping Genius lookup")
            return None

        variants = title_variants(title)
        if not variants:
            return None

        # Reduced variants only widen the search; hits are always judged against the full title
        full_title = variants[0]
        tried_urls: set[str] = set()
        for strategy in self.strategies:
            terms = variants[:1] if strategy.variants == "full" else variants[1:]
            for term in terms:
                query = strategy.query.format(artist=settings.target_artist, title=term).strip()
                for result in await self._search(query, strategy.max_hits):
                    if not self._accept(result, full_title, strategy):
                        continue
                    url = result.get("url") or ""
                    if not url or url in tried_urls:
                        continue
                    tried_urls.add(url)

                    lyrics = await self._scrape(url)
                    if lyrics:
                        logger.info(
                            "Lyrics for '%s' found via %s strategy: %s",
                            title, strategy.name, url,
                        )
                        return RetrievedLyrics(
                            lyrics_text=lyrics, source_url=url, source_id=result.get("id"),
                        )

        logger.info("No lyrics found for '%s'", title)
        return None

    def _accept(self, result: dict[str, Any], title: str, strategy: SearchStrategy) -> bool:
        if not any(is_target_artist(name) for name in _hit_artists(result)):
            return False
        return title_similarity(result.get("title", ""), title) > strategy.min_similarity

    async def _search(self, query: str, max_hits: int) -> list[dict[str, Any]]:
        try:
            response = await asyncio.to_thread(self._api().search_songs, query)
        except Exception:
            logger.exception("Genius search failed for '%s'", query)
            return []
        hits = (response or {}).get("hits") or []
        return [hit.get("result") or {} for hit in hits[:max_hits]]

    async def _scrape(self, url: str) -> str | None:
        """Fetch a song page and extract its lyrics; None if too short to be lyrics."""
        client = self._client()

        async def _get() -> httpx.Response:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp

        try:
            resp = await with_retry(_get, description=f"GET {url}")
            text = extract_lyrics(resp.text, self.extractors)
        except Exception:
            logger.exception("Failed to scrape lyrics page %s", url)
            return None

        if not text:
            return None
        line_count = sum(1 for line in text.split("\n") if line.strip())
        if line_count < settings.min_lyric_lines:
            logger.info("Discarding %s: only %d lyric lines", url, line_count)
            return None
        return text

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None
