"""Line-level alignment of known lyrics against word-level ASR timestamps.

Lyric lines and the transcript share a strict temporal order, so alignment is
a single forward pass: a cursor into the transcript only ever moves forward,
and each line searches a bounded window of unconsumed words for its best
starting offset. Lines that match nothing still get an estimated timing with
confidence 0, so the output always has exactly one entry per lyric line.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from rapidfuzz.distance import Levenshtein

from lyricsync.config import settings
from lyricsync.models.lyrics import TimedLine
from lyricsync.models.transcript import TranscriptWord

_TOKEN_STRIP_RE = re.compile(r"[^\w\s']")
_WORD_STRIP_RE = re.compile(r"[^\w']")


@dataclass(frozen=True)
class AlignmentConfig:
    search_window: int = 50
    min_line_score: float = 0.3
    early_stop_score: float = 0.9
    token_similarity: float = 0.7
    gap_ms: int = 500
    ms_per_word: int = 300

    @classmethod
    def from_settings(cls) -> "AlignmentConfig":
        return cls(
            search_window=settings.alignment_search_window,
            min_line_score=settings.alignment_min_line_score,
            early_stop_score=settings.alignment_early_stop_score,
            token_similarity=settings.alignment_token_similarity,
            gap_ms=settings.alignment_gap_ms,
            ms_per_word=settings.alignment_ms_per_word,
        )


@dataclass(frozen=True)
class LineMatch:
    """Where a line matched in the transcript: words [start, end) and their score."""

    start: int
    end: int
    score: float


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max(len(a), len(b))."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1 - Levenshtein.distance(a, b) / max(len(a), len(b))


def split_lyric_lines(raw_lyrics: str) -> list[str]:
    return [line.strip() for line in raw_lyrics.split("\n") if line.strip()]


def tokenize(line: str) -> list[str]:
    return _TOKEN_STRIP_RE.sub("", line.lower()).split()


def _normalize_word(text: str) -> str:
    return _WORD_STRIP_RE.sub("", text.lower())


def _round_half_up(value: float) -> float:
    """Two decimals, ties away from zero; float noise below 1e-9 is dropped first."""
    exact = Decimal(str(round(value, 9)))
    return float(exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def find_best_match(
    words: list[str],
    start_from: int,
    target: list[str],
    config: AlignmentConfig,
) -> LineMatch | None:
    """Best starting offset for ``target`` within the window after ``start_from``."""
    if not target or start_from >= len(words):
        return None

    best: LineMatch | None = None
    window_end = min(start_from + config.search_window, len(words))

    for i in range(start_from, window_end):
        match_len = min(len(target), len(words) - i)
        score = 0.0
        for j in range(match_len):
            heard, expected = words[i + j], target[j]
            if heard == expected:
                score += 1.0
            elif levenshtein_similarity(heard, expected) > config.token_similarity:
                score += 0.7

        normalized = score / len(target)
        if normalized > config.min_line_score and (best is None or normalized > best.score):
            best = LineMatch(start=i, end=i + match_len, score=normalized)

        if normalized > config.early_stop_score:
            break

    return best


def align_words_to_lyrics(
    words: list[TranscriptWord],
    raw_lyrics: str,
    config: AlignmentConfig | None = None,
) -> list[TimedLine]:
    """Produce one TimedLine per non-empty lyric line, in input order."""
    config = config or AlignmentConfig.from_settings()
    normalized_words = [_normalize_word(w.text) for w in words]

    result: list[TimedLine] = []
    word_idx = 0

    for n, line in enumerate(split_lyric_lines(raw_lyrics), start=1):
        tokens = tokenize(line)
        match = find_best_match(normalized_words, word_idx, tokens, config)

        if match is not None:
            span = words[match.start:match.end]
            # 0 is reserved for synthesized lines
            confidence = max(_round_half_up(sum(w.confidence for w in span) / len(span)), 0.01)
            result.append(TimedLine(
                id=f"l{n}",
                start_ms=span[0].start_ms,
                end_ms=span[-1].end_ms,
                text=line,
                confidence=confidence,
            ))
            word_idx = match.end
            continue

        # Unmatched: estimate from the previous line, cursor stays put
        duration = max(len(tokens), 1) * config.ms_per_word
        start_ms = result[-1].end_ms + config.gap_ms if result else 0
        result.append(TimedLine(
            id=f"l{n}",
            start_ms=start_ms,
            end_ms=start_ms + duration,
            text=line,
            confidence=0.0,
        ))

    return result


def timed_ratio(lines: list[TimedLine]) -> float:
    """Fraction of lines that matched the transcript (confidence > 0)."""
    if not lines:
        return 0.0
    return sum(1 for line in lines if line.confidence > 0) / len(lines)
