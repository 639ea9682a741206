"""
Loads and handles config from config.yml
Bluesky credentials (SKYWRITE_APP_IDENTIFIER, SKYWRITE_APP_PASSWORD) are loaded from .env for security
"""
import os
from typing import List, Dict, Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_NEWS_API_URL = "https://infinitynikki.infoldgames.com/api/news"
DEFAULT_NEWS_SITE_URL = "https://infinitynikki.infoldgames.com"
SOURCE_TYPES = ("news_api", "rss")


class SourceConfig(BaseModel):
    """Configuration for a single polled source."""
    type: str  # news_api, rss
    enabled: bool = True
    name: Optional[str] = None
    url: Optional[str] = None  # For news_api
    site_url: Optional[str] = None  # For news_api, base of canonical links
    locale: str = "en"  # For news_api
    page_size: int = 20  # For news_api
    feeds: Optional[List[str]] = None  # For rss
    interval_seconds: int = 300
    backdate_hours: int = 3
    languages: List[str] = ["en"]


class Config(BaseModel):
    # Core
    DATABASE_PATH: str
    DATA_PATH: str
    RETENTION_CAP: int = 25000
    LOG_LEVEL: str = "INFO"

    # Bluesky
    BLUESKY_SERVICE: str = "https://bsky.social"
    BLUESKY_IDENTIFIER: Optional[str] = None
    BLUESKY_PASSWORD: Optional[str] = None
    DISABLE_POST_COMMENTS: bool = True
    DRY_RUN: bool = False

    # Supervision
    RESTART_FAILED_SOURCES: bool = False

    sources: List[SourceConfig] = []


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path(path: Optional[str] = None) -> str:
    """Get the path to config.yml, handling different working directories."""
    path = path or os.getenv("SKYWRITE_CONFIG")
    if path:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Cannot find config file at {path}")
        return path

    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def _parse_languages(value: Any) -> List[str]:
    if not value:
        return ["en"]
    if isinstance(value, str):
        value = value.split(",")
    # Ordered set: keep the first occurrence of each code
    languages = []
    for lang in value:
        lang = str(lang).strip()
        if lang and lang not in languages:
            languages.append(lang)
    return languages


def _parse_source_config(data: Dict[str, Any]) -> SourceConfig:
    """Parse a single source entry from YAML data."""
    source_type = str(data.get("type", "")).lower()
    if source_type not in SOURCE_TYPES:
        raise ValueError(f"Unknown source type: {source_type}")

    feeds = data.get("feeds")
    if isinstance(feeds, str):
        feeds = [f.strip() for f in feeds.split(",") if f.strip()]

    return SourceConfig(
        type=source_type,
        enabled=_bool(data.get("enabled", True)),
        name=data.get("name"),
        url=data.get("url", DEFAULT_NEWS_API_URL if source_type == "news_api" else None),
        site_url=data.get("site_url", DEFAULT_NEWS_SITE_URL if source_type == "news_api" else None),
        locale=data.get("locale", "en"),
        page_size=int(data.get("page_size", 20)),
        feeds=feeds,
        interval_seconds=int(data.get("interval_seconds", 300)),
        backdate_hours=int(data.get("backdate_hours", 3)),
        languages=_parse_languages(data.get("languages")),
    )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and credentials from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config_path = _get_config_path(path)

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file) or {}

    # A broken source entry is an unrecoverable configuration error
    sources = [_parse_source_config(src) for src in config.get("sources", [])]

    return Config(
        DATABASE_PATH=os.getenv("DATABASE_PATH") or config.get("DATABASE_PATH", "data/skywrite.db"),
        DATA_PATH=os.getenv("DATA_PATH") or config.get("DATA_PATH", "data"),
        RETENTION_CAP=int(config.get("RETENTION_CAP", 25000)),
        LOG_LEVEL=str(os.getenv("LOG_LEVEL") or config.get("LOG_LEVEL", "INFO")).upper(),

        BLUESKY_SERVICE=config.get("BLUESKY_SERVICE", "https://bsky.social"),
        BLUESKY_IDENTIFIER=os.getenv("SKYWRITE_APP_IDENTIFIER"),
        BLUESKY_PASSWORD=os.getenv("SKYWRITE_APP_PASSWORD"),
        DISABLE_POST_COMMENTS=_bool(config.get("DISABLE_POST_COMMENTS", True)),
        DRY_RUN=_bool(os.getenv("SKYWRITE_DRY_RUN") or config.get("DRY_RUN", False)),

        RESTART_FAILED_SOURCES=_bool(config.get("RESTART_FAILED_SOURCES", False)),

        sources=sources,
    )


def get_enabled_sources(config: Config) -> List[SourceConfig]:
    """Get only enabled sources from a config."""
    return [src for src in config.sources if src.enabled]
