from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class CandidateItem:
    """
    A source-provided entry that has not been published yet.
    Produced by a fetcher and consumed once by the assembler.
    """
    id: str
    title: str
    link: str
    publish_time: Optional[datetime]
    summary: Optional[str] = None
    cover_image: Optional[str] = None


@dataclass(frozen=True)
class PostEmbed:
    """
    Link-preview card attached to a post.
    """
    title: str
    description: str
    uri: str
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True)
class Post:
    """
    Normalized post ready for a publisher.
    """
    text: str
    created_at: datetime
    languages: List[str] = field(default_factory=list)
    embed: Optional[PostEmbed] = None


@dataclass(frozen=True)
class PostReference:
    uri: str
    cid: Optional[str] = None


@dataclass(frozen=True)
class PageMetadata:
    """
    Metadata scraped from a linked page.
    """
    description: Optional[str] = None
    thumbnail: Optional[str] = None
