"""Configuration settings for the news feed service."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Versioning (first element of every served payload)
    debug_version: str = "tslafeed v1.2.0-cache"
    scheduled_debug_version: str = "tslafeed v1.2.0-scheduled"

    # Admin
    generate_secret: str = os.getenv("GENERATE_SECRET", "")
    admin_header: str = "x-gen-auth"

    # Cache
    cache_backend: str = "memory"  # memory | sqlite | firestore
    cache_key: str = "latest_news"
    miss_ttl_seconds: int = 360  # a little longer than the cron interval
    hit_max_age: int = 240
    miss_max_age: int = 60
    error_ttl_seconds: int = 7 * 24 * 60 * 60
    sqlite_path: str = "tslafeed_cache.db"
    firestore_collection: str = "tslafeed_cache"
    firestore_project: Optional[str] = os.getenv("GOOGLE_CLOUD_PROJECT")

    # Failure notices
    site_name: str = "TSLAblog.com"
    notify_email: str = os.getenv("NOTIFY_EMAIL", "")
    display_timezone: str = "America/Los_Angeles"

    # Fetching
    batch_size: int = 4
    batch_delay: float = 0.2
    fetch_timeout: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/123.0.0.0 Safari/537.36"
    )

    # Windowing and ranking
    window_days: int = 7
    max_items: int = 250
    max_media_items: int = 7
    low_item_warning: int = 60

    # Provider rules
    excluded_sources: list[str] = [r"electrek\.co"]
    image_suppressed_hosts: list[str] = ["teslarati.com"]
    authoritative_feed_prefix: str = "https://news.google.com/rss/search"
    authoritative_query_term: str = "tesla"

    # Scheduler
    scheduler_enabled: bool = True
    refresh_interval_seconds: int = 300

    # Paths
    project_root: Path = Path(__file__).parent.parent.parent
    config_dir: Path = Path(__file__).parent

    # Config files
    feeds_file: Path = config_dir / "feeds.json"
    topics_file: Path = config_dir / "topics.yaml"

    class Config:
        env_file = ".env"
        env_prefix = "TSLAFEED_"
        extra = "ignore"


# Global settings instance
settings = Settings()
