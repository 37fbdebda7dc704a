from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root (one level above server/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Required API keys (a missing key skips the matching pipeline stage)
    genius_access_token: str = ""
    assemblyai_api_key: str = ""

    # External endpoints
    assemblyai_api_base: str = "https://api.assemblyai.com/v2"
    catalog_api_base: str = "https://juicewrldapi.com/juicewrld"

    # Infrastructure
    redis_url: str = "redis://localhost:6379/0"
    database_url: str = "sqlite:///./data/lyricsync.db"

    # Target artist matching
    target_artist: str = "Juice WRLD"
    artist_aliases: str = "juice,wrld,999,jarad,bibby"
    known_collaborators: str = "Juice WRLD,Lil Bibby,Grade A"
    eligible_categories: str = "released,unreleased"

    # Worker pools and scan caps (0 = no cap)
    retrieval_workers: int = 5
    alignment_workers: int = 4
    retrieval_max_songs: int = 0
    alignment_max_songs: int = 0

    # Retrieval policy
    min_lyric_lines: int = 10

    # Alignment policy
    alignment_search_window: int = 50
    alignment_min_line_score: float = 0.3
    alignment_early_stop_score: float = 0.9
    alignment_token_similarity: float = 0.7
    alignment_gap_ms: int = 500
    alignment_ms_per_word: int = 300
    publish_min_confident_ratio: float = 0.3
    min_raw_lyrics_chars: int = 20

    # Review policy
    submit_min_timed_ratio: float = 0.7
    max_line_duration_ms: int = 12000

    # HTTP behaviour
    search_timeout_seconds: float = 15.0
    scrape_timeout_seconds: float = 20.0
    asr_timeout_seconds: float = 25.0
    audio_check_timeout_seconds: float = 10.0
    transcript_poll_interval_seconds: float = 3.0
    transcript_max_wait_seconds: float = 300.0
    http_retry_attempts: int = 3
    http_retry_backoff_seconds: float = 1.0

    # Run state
    run_log_limit: int = 250
    error_sample_limit: int = 50
    system_author_id: str = "system"

    # Celery beat (0 disables the schedule)
    schedule_full_sync_hours: int = 0
    schedule_force_retime_days: int = 0

    # App settings
    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def artist_alias_list(self) -> list[str]:
        return [a.lower() for a in _split_csv(self.artist_aliases)]

    @property
    def collaborator_list(self) -> list[str]:
        return [c.lower() for c in _split_csv(self.known_collaborators)]

    @property
    def eligible_category_list(self) -> list[str]:
        return _split_csv(self.eligible_categories)

    @property
    def retrieval_worker_count(self) -> int:
        return _clamp(self.retrieval_workers, 1, 15)

    @property
    def alignment_worker_count(self) -> int:
        return _clamp(self.alignment_workers, 1, 8)


settings = Settings()
