"""Feed fetching and parsing helpers."""

from __future__ import annotations

import calendar
import logging
import time
import xml.sax
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

import feedparser
import requests
from bs4 import BeautifulSoup
from feedparser.exceptions import UndeclaredNamespace

from .models import FeedItem, ParsedFeed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "rss-to-note/1.0 (+feed to note importer)"

UNKNOWN_AUTHOR = "Unknown"
UNTITLED = "Untitled"


class FetchError(Exception):
    """Raised when a feed cannot be downloaded."""


class ParseError(Exception):
    """Raised when a feed document is not well-formed XML."""


@dataclass
class FetchResponse:
    status: int
    text: str
    content: bytes = b""


def fetch_feed(url: str, timeout: float = DEFAULT_TIMEOUT) -> FetchResponse:
    """Download a feed document with a plain HTTP GET."""
    logger.info("Fetching feed %s", url)
    try:
        response = requests.get(
            url, timeout=timeout, headers={"User-Agent": USER_AGENT}
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch feed %s: %s", url, exc)
        raise FetchError(str(exc)) from exc

    logger.debug(
        "Fetched %s (status %s, %d bytes)",
        url,
        response.status_code,
        len(response.content),
    )
    return FetchResponse(
        status=response.status_code, text=response.text, content=response.content
    )


# Each extractor takes a feedparser entry and returns a value or None.
Extractor = Callable[[Any], Optional[str]]


def _field(name: str) -> Extractor:
    def extract(entry: Any) -> Optional[str]:
        value = entry.get(name)
        if isinstance(value, str):
            return value.strip() or None
        return None

    return extract


def _first_link_href(entry: Any) -> Optional[str]:
    for link in entry.get("links") or []:
        href = (link.get("href") or "").strip()
        if href:
            return href
    return None


def _detail_name(name: str) -> Extractor:
    def extract(entry: Any) -> Optional[str]:
        detail = entry.get(name) or {}
        return (detail.get("name") or "").strip() or None

    return extract


def _content_values(entry: Any) -> Optional[str]:
    for block in entry.get("content") or []:
        value = (block.get("value") or "").strip()
        if value:
            return value
    return None


def _detail_value(name: str) -> Extractor:
    def extract(entry: Any) -> Optional[str]:
        detail = entry.get(name) or {}
        return (detail.get("value") or "").strip() or None

    return extract


LINK_EXTRACTORS: Sequence[Extractor] = (_field("link"), _first_link_href)
AUTHOR_EXTRACTORS: Sequence[Extractor] = (
    _field("author"),
    _detail_name("author_detail"),
    _field("dc_creator"),
)

# feedparser files RSS <pubDate> under "published", so RSS reads pubDate
# first while Atom reads <updated> before <published>.
RSS_DATE_FIELDS = ("published", "updated", "created")
ATOM_DATE_FIELDS = ("updated", "published", "created")

# feedparser files RSS <description> and Atom <summary> under "summary", and
# both Atom <content> and <content:encoded> under "content". Atom bodies come
# from <content> first; RSS bodies from <description> first.
CONTENT_EXTRACTORS: Sequence[Extractor] = (
    _field("summary"),
    _content_values,
    _detail_value("summary_detail"),
)
ATOM_CONTENT_EXTRACTORS: Sequence[Extractor] = (
    _content_values,
    _field("summary"),
    _detail_value("summary_detail"),
)


def first_value(entry: Any, extractors: Sequence[Extractor]) -> Optional[str]:
    """Return the first non-empty value produced by the extractors."""
    for extractor in extractors:
        value = extractor(entry)
        if value:
            return value
    return None


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    return soup.get_text(separator=" ", strip=True)


def _extract_title(entry: Any) -> str:
    title = first_value(entry, (_field("title"),))
    if not title:
        return UNTITLED
    detail = entry.get("title_detail") or {}
    if detail.get("type") in ("text/html", "application/xhtml+xml"):
        title = _strip_html(title) or UNTITLED
    return title


def _to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


def _extract_date(
    entry: Any, fields: Sequence[str]
) -> Tuple[Optional[str], Optional[datetime]]:
    """Return the first present date string and its parsed instant, if any."""
    for name in fields:
        raw = _field(name)(entry)
        if not raw:
            continue
        try:
            return raw, _to_datetime(entry.get(f"{name}_parsed"))
        except (OverflowError, ValueError):
            return raw, None
    return None, None


def _is_fatal(exc: Optional[BaseException]) -> bool:
    return isinstance(exc, (xml.sax.SAXException, UndeclaredNamespace))


def parse_feed(document: Union[str, bytes]) -> ParsedFeed:
    """Parse an RSS or Atom document into feed metadata and items.

    Item bodies are returned exactly as the feed sent them; feedparser's own
    HTML sanitising and relative URI rewriting are turned off.

    Raises:
        ParseError: If the document is not well-formed XML.
    """
    if not document or not document.strip():
        raise ParseError("Empty feed document")

    parsed = feedparser.parse(
        document, sanitize_html=False, resolve_relative_uris=False
    )

    if parsed.bozo:
        exc = parsed.get("bozo_exception")
        if _is_fatal(exc):
            raise ParseError(f"Invalid XML format: {exc}")
        logger.debug("Ignoring benign feed parser warning: %s", exc)

    if (parsed.get("version") or "").startswith("atom"):
        date_fields, content_extractors = ATOM_DATE_FIELDS, ATOM_CONTENT_EXTRACTORS
    else:
        date_fields, content_extractors = RSS_DATE_FIELDS, CONTENT_EXTRACTORS

    now = datetime.now(timezone.utc)
    items: List[FeedItem] = []
    for entry in parsed.entries:
        pub_date, published_at = _extract_date(entry, date_fields)
        if pub_date is None:
            pub_date = now.isoformat()
            published_at = now

        items.append(
            FeedItem(
                link=first_value(entry, LINK_EXTRACTORS),
                title=_extract_title(entry),
                author=first_value(entry, AUTHOR_EXTRACTORS) or UNKNOWN_AUTHOR,
                pub_date=pub_date,
                content=first_value(entry, content_extractors) or "",
                published_at=published_at,
            )
        )

    feed_meta = parsed.get("feed") or {}
    title = (feed_meta.get("title") or "").strip() or None
    last_build = feed_meta.get("updated") or None

    logger.debug("Parsed %d items from feed '%s'", len(items), title)
    return ParsedFeed(title=title, last_build_date=last_build, items=items)
