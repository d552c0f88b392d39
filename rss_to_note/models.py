"""Shared data models for rss_to_note."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

DEFAULT_TEMPLATE = (
    "---\n"
    'title: "{{title}}"\n'
    'author: "{{author}}"\n'
    'source: "{{link}}"\n'
    'date: "{{pubDate}}"\n'
    'feed: "{{feedName}}"\n'
    "---\n"
    "\n"
    "{{content}}"
)

DEFAULT_FOLDER = "RSS Notes"

FOLDER_SHARED = "shared"
FOLDER_SEPARATE = "separate"
FOLDER_STRUCTURES = (FOLDER_SHARED, FOLDER_SEPARATE)

FORMAT_HTML = "html"
FORMAT_HTML_BLOCK = "htmlBlock"
FORMAT_HTML_CALLOUT = "htmlCallout"
CONTENT_FORMATS = (FORMAT_HTML, FORMAT_HTML_BLOCK, FORMAT_HTML_CALLOUT)


@dataclass
class FeedConfig:
    """Configuration for a single subscribed feed."""

    id: str
    url: str = ""
    name: str = "Feed 1"
    folder: str = DEFAULT_FOLDER
    start_date: str = ""
    fetched_links: List[str] = field(default_factory=list)
    last_sync: Optional[datetime] = None
    template_override: str = ""


@dataclass
class FeedMetadata:
    """Diagnostic metadata cached per feed URL."""

    title: str
    item_count: int
    last_build_date: Optional[str] = None
    last_checked: Optional[datetime] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class GlobalConfig:
    """The single persisted settings blob."""

    feeds: List[FeedConfig] = field(default_factory=list)
    folder_structure: str = FOLDER_SHARED
    shared_folder: str = DEFAULT_FOLDER
    fetch_interval: str = "manual"
    custom_interval_minutes: int = 30
    content_format: str = FORMAT_HTML
    template: str = DEFAULT_TEMPLATE
    use_per_feed_templates: bool = False
    feed_cache: Dict[str, FeedMetadata] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass
class FeedItem:
    """One entry extracted from a feed document."""

    link: Optional[str]
    title: str
    author: str
    pub_date: str
    content: str
    published_at: Optional[datetime] = None


@dataclass
class ParsedFeed:
    """Normalized view of a feed document."""

    title: Optional[str]
    last_build_date: Optional[str]
    items: List[FeedItem]


@dataclass
class RenderedNote:
    path: str
    body: str


@dataclass
class FeedSyncResult:
    """Outcome of syncing one feed."""

    feed_id: str
    feed_name: str
    imported: int = 0
    failed_items: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    rejected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.rejected


@dataclass
class BatchSyncResult:
    """Aggregate outcome of a fetch-all run."""

    results: List[FeedSyncResult] = field(default_factory=list)
    rejected: bool = False

    @property
    def total_imported(self) -> int:
        return sum(result.imported for result in self.results)

    @property
    def failures(self) -> List[FeedSyncResult]:
        return [result for result in self.results if result.error is not None]


@dataclass
class FeedHealth:
    """Result of a diagnostic fetch and parse."""

    success: bool
    feed_title: Optional[str] = None
    item_count: int = 0
    last_build_date: Optional[str] = None
    error: Optional[str] = None
    rejected: bool = False
