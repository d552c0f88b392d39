"""High-level orchestration: fetch feeds and materialise new items as notes."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from .config import SettingsStore
from .feeds import FetchError, FetchResponse, ParseError, fetch_feed, parse_feed
from .filters import should_import
from .models import (
    BatchSyncResult,
    FeedConfig,
    FeedHealth,
    FeedItem,
    FeedMetadata,
    FeedSyncResult,
    GlobalConfig,
    ParsedFeed,
    RenderedNote,
)
from .notifications import ConsoleNotifier, Notifier
from .paths import NoteStore, resolve_note_path, resolve_target_folder
from .sanitizer import format_content
from .templating import render_note_template
from .vault import FilesystemError

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A feed sync is already running."


class SyncInProgressError(RuntimeError):
    """Raised when a run is triggered while another one is active."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedSyncRunner:
    """Drives feeds through fetch, parse, filter, render and write.

    Runs are strictly sequential. A trigger that arrives while a run is
    active is rejected rather than interleaved.
    """

    def __init__(
        self,
        store: SettingsStore,
        vault: NoteStore,
        fetcher: Callable[[str], FetchResponse] = fetch_feed,
        notify: Optional[Notifier] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.vault = vault
        self.fetcher = fetcher
        self.notify = notify or ConsoleNotifier()
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def config(self) -> GlobalConfig:
        return self.store.config

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError(BUSY_MESSAGE)
        try:
            yield
        finally:
            self._lock.release()

    # -- public entry points ---------------------------------------------

    def fetch_all_feeds(self) -> BatchSyncResult:
        """Sync every feed with a URL and report one aggregate notice."""
        try:
            with self._exclusive():
                return self._fetch_all()
        except SyncInProgressError:
            logger.warning("Batch fetch rejected: a run is already in progress")
            self.notify(BUSY_MESSAGE)
            return BatchSyncResult(rejected=True)

    def fetch_single_feed(
        self, feed: FeedConfig, show_notice: bool = True
    ) -> FeedSyncResult:
        try:
            with self._exclusive():
                result = self._sync_feed(feed)
        except SyncInProgressError:
            logger.warning("Fetch of '%s' rejected: a run is already in progress", feed.name)
            if show_notice:
                self.notify(BUSY_MESSAGE)
            return FeedSyncResult(feed.id, feed.name, rejected=True)

        if show_notice:
            self.notify(self._single_feed_notice(feed, result))
        return result

    def test_feed_health(self, url: str, show_notice: bool = True) -> FeedHealth:
        """Fetch and parse a feed without writing notes or touching ledgers."""
        try:
            with self._exclusive():
                health = self._check_health(url)
        except SyncInProgressError:
            if show_notice:
                self.notify(BUSY_MESSAGE)
            return FeedHealth(success=False, error=BUSY_MESSAGE, rejected=True)

        if show_notice:
            if health.success:
                self.notify(
                    f'Feed healthy: "{health.feed_title}" ({health.item_count} items)'
                )
            else:
                self.notify(f"Feed error: {health.error}")
        return health

    # -- internals -------------------------------------------------------

    def _fetch_all(self) -> BatchSyncResult:
        feeds = [feed for feed in self.config.feeds if feed.url]
        batch = BatchSyncResult()
        if not feeds:
            self.notify("No feeds configured")
            return batch

        logger.info("Starting to fetch %d RSS feeds", len(feeds))
        for feed in feeds:
            batch.results.append(self._sync_feed(feed))

        message = (
            f"RSS import complete: {batch.total_imported} new items "
            f"across {len(feeds)} feeds."
        )
        failures = batch.failures
        if failures:
            details = "; ".join(f"{result.feed_name} ({result.error})" for result in failures)
            message += f" {len(failures)} failed: {details}"
        logger.info(message)
        self.notify(message)
        return batch

    @staticmethod
    def _single_feed_notice(feed: FeedConfig, result: FeedSyncResult) -> str:
        if not feed.url:
            return result.error or "Feed URL not configured"
        if result.error:
            return f"Failed to fetch {feed.name}: {result.error}"
        return f"{feed.name}: {result.imported} new items imported."

    def _download(self, url: str) -> ParsedFeed:
        response = self.fetcher(url)
        if response.status >= 400:
            raise FetchError(f"HTTP {response.status} for {url}")
        return parse_feed(response.content or response.text)

    def _update_cache(self, url: str, parsed: ParsedFeed, fallback_title: str) -> FeedMetadata:
        metadata = FeedMetadata(
            title=parsed.title or fallback_title,
            item_count=len(parsed.items),
            last_build_date=parsed.last_build_date,
            last_checked=self.clock(),
        )
        self.config.feed_cache[url] = metadata
        return metadata

    def _sync_feed(self, feed: FeedConfig) -> FeedSyncResult:
        result = FeedSyncResult(feed.id, feed.name)
        if not feed.url:
            result.error = "Feed URL not configured"
            return result

        try:
            feed.last_sync = self.clock()
            self.store.save()

            parsed = self._download(feed.url)
            self._update_cache(feed.url, parsed, fallback_title=feed.name)

            for item in parsed.items:
                self._import_item(feed, item, result)

            self.store.save()
        except (FetchError, ParseError) as exc:
            logger.error("Failed to sync feed '%s' (%s): %s", feed.name, feed.url, exc)
            result.error = str(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while syncing feed '%s'", feed.name)
            result.error = str(exc)

        logger.info(
            "Feed '%s': %d new items imported, %d failed",
            feed.name,
            result.imported,
            result.failed_items,
        )
        return result

    def _import_item(self, feed: FeedConfig, item: FeedItem, result: FeedSyncResult) -> None:
        decision = should_import(item, feed)
        if decision.warning is not None:
            result.warnings.append(str(decision.warning))
        if not decision:
            logger.debug("Skipping item %s: %s", item.link, decision.reason)
            return

        try:
            note = self._write_note(feed, item)
        except FilesystemError as exc:
            logger.error("Could not write note for %s: %s", item.link, exc)
            result.failed_items += 1
            return
        except Exception:  # noqa: BLE001
            logger.exception("Failed to import item %s", item.link)
            result.failed_items += 1
            return

        # Recorded only after the note exists on disk.
        feed.fetched_links.append(item.link)
        result.imported += 1
        logger.info("Imported '%s' to %s", item.title, note.path)
        try:
            self.store.save()
        except Exception:  # noqa: BLE001
            # The link stays in memory and goes out with the next save.
            logger.exception("Failed to save settings after importing %s", item.link)
            result.failed_items += 1

    def _template_for(self, feed: FeedConfig) -> str:
        if self.config.use_per_feed_templates and feed.template_override:
            return feed.template_override
        return self.config.template

    def _write_note(self, feed: FeedConfig, item: FeedItem) -> RenderedNote:
        fields = {
            "title": item.title,
            "author": item.author,
            "link": item.link or "",
            "pubDate": item.pub_date,
            "feedName": feed.name,
            "content": format_content(item.content, self.config.content_format),
        }
        body = render_note_template(self._template_for(feed), fields)
        folder = resolve_target_folder(self.config, feed)
        path = resolve_note_path(item.title, folder, self.vault)
        self.vault.create_file(path, body)
        return RenderedNote(path=path, body=body)

    def _check_health(self, url: str) -> FeedHealth:
        if not url:
            return FeedHealth(success=False, error="No feed URL provided")

        try:
            parsed = self._download(url)
        except (FetchError, ParseError) as exc:
            logger.warning("Health check failed for %s: %s", url, exc)
            return FeedHealth(success=False, error=str(exc))

        metadata = self._update_cache(url, parsed, fallback_title="Unknown")
        self.store.save()
        return FeedHealth(
            success=True,
            feed_title=metadata.title,
            item_count=metadata.item_count,
            last_build_date=metadata.last_build_date,
        )
