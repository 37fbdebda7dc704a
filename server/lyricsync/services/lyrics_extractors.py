"""Lyric text extraction from lyrics-site HTML pages.

Each extractor knows one page structure. ``extract_lyrics`` tries them in
order and returns the first non-empty result, so page layout changes only
require adding or retiring an extractor here.
"""

import re
from typing import Protocol

from bs4 import BeautifulSoup, Tag


class LyricsExtractor(Protocol):
    name: str

    def extract(self, html: str) -> str | None: ...


def _container_text(container: Tag) -> str:
    for br in container.find_all("br"):
        br.replace_with("\n")
    # Header/bio blocks nested inside the container are not lyrics
    for elem in container.find_all(
        ["div", "span"],
        class_=lambda c: bool(c) and any(
            marker in c for marker in ("LyricsHeader", "SongBioPreview", "ContributorsCredit")
        ),
    ):
        elem.decompose()
    return container.get_text()


def clean_lyrics_text(text: str) -> str:
    """Normalize extracted text: trimmed lines, at most one blank line in a row."""
    lines = [line.strip() for line in text.replace("\xa0", " ").split("\n")]
    cleaned = "\n".join(lines)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def _join(containers: list[Tag]) -> str | None:
    if not containers:
        return None
    text = clean_lyrics_text("\n".join(_container_text(c) for c in containers))
    return text or None


class DataAttributeExtractor:
    """Current layout: ``<div data-lyrics-container="true">``."""

    name = "data-lyrics-container"

    def extract(self, html: str) -> str | None:
        soup = BeautifulSoup(html, "html.parser")
        return _join(soup.find_all("div", attrs={"data-lyrics-container": "true"}))


class LegacyClassExtractor:
    """Older layout: ``class="Lyrics__Container-..."``."""

    name = "lyrics-container-class"

    def extract(self, html: str) -> str | None:
        soup = BeautifulSoup(html, "html.parser")
        return _join(soup.find_all("div", class_=re.compile(r"^Lyrics__Container")))


class ReactClassExtractor:
    """Fallback for React builds that hash class names: any ``Lyrics_`` class."""

    name = "lyrics-prefixed-class"

    def extract(self, html: str) -> str | None:
        soup = BeautifulSoup(html, "html.parser")
        matches = soup.find_all("div", class_=re.compile(r"Lyrics_", re.IGNORECASE))
        # Keep only outermost matches so nested wrappers are not read twice
        ids = {id(m) for m in matches}
        outer = [m for m in matches if not any(id(p) in ids for p in m.parents)]
        return _join(outer)


DEFAULT_EXTRACTORS: list[LyricsExtractor] = [
    DataAttributeExtractor(),
    LegacyClassExtractor(),
    ReactClassExtractor(),
]


def extract_lyrics(html: str, extractors: list[LyricsExtractor] | None = None) -> str | None:
    for extractor in extractors or DEFAULT_EXTRACTORS:
        text = extractor.extract(html)
        if text:
            return text
    return None
