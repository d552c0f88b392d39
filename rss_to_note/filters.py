"""Decide which feed items are new enough to import."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

from .models import FeedConfig, FeedItem

logger = logging.getLogger(__name__)

INCLUDED = "included"
MISSING_LINK = "missing-link"
ALREADY_IMPORTED = "already-imported"
BEFORE_START_DATE = "before-start-date"


@dataclass(frozen=True)
class DateFilterWarning:
    """An item kept only because a date could not be parsed."""

    link: Optional[str]
    value: str
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} ({self.field}={self.value!r}, link={self.link})"


@dataclass(frozen=True)
class ImportDecision:
    include: bool
    reason: str
    warning: Optional[DateFilterWarning] = None

    def __bool__(self) -> bool:
        return self.include


def parse_instant(value: str) -> datetime:
    """Parse a date string into an aware datetime; naive values are UTC."""
    parsed = date_parser.parse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def should_import(item: FeedItem, feed: FeedConfig) -> ImportDecision:
    """Return whether ``item`` should become a note for ``feed``.

    Items without a link or already in the ledger are always excluded.
    The start-date bound is inclusive and fails open: if either date cannot
    be parsed the item is kept and the decision carries a warning.
    """
    if not item.link:
        return ImportDecision(False, MISSING_LINK)
    if item.link in feed.fetched_links:
        return ImportDecision(False, ALREADY_IMPORTED)

    start_value = (feed.start_date or "").strip()
    if not start_value:
        return ImportDecision(True, INCLUDED)

    try:
        start = parse_instant(start_value)
    except (ValueError, OverflowError) as exc:
        warning = DateFilterWarning(
            item.link, start_value, "startDate", f"Unparseable start date: {exc}"
        )
        logger.warning("Date parsing error for feed '%s': %s", feed.name, warning)
        return ImportDecision(True, INCLUDED, warning)

    item_instant = item.published_at
    if item_instant is None:
        try:
            item_instant = parse_instant(item.pub_date)
        except (ValueError, OverflowError) as exc:
            warning = DateFilterWarning(
                item.link, item.pub_date, "pubDate", f"Unparseable publish date: {exc}"
            )
            logger.warning("Date parsing error for feed '%s': %s", feed.name, warning)
            return ImportDecision(True, INCLUDED, warning)

    if item_instant >= start:
        return ImportDecision(True, INCLUDED)
    logger.debug("Skipping %s published before %s", item.link, start_value)
    return ImportDecision(False, BEFORE_START_DATE)
