"""Persisted settings: loading, migration, saving and operator actions."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from xml.etree import ElementTree as ET

from .models import (
    CONTENT_FORMATS,
    DEFAULT_FOLDER,
    DEFAULT_TEMPLATE,
    FOLDER_STRUCTURES,
    FeedConfig,
    FeedMetadata,
    GlobalConfig,
    LoggingConfig,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# Minutes between automatic fetches; None means manual only.
FETCH_INTERVALS: Dict[str, Optional[int]] = {
    "manual": None,
    "10min": 10,
    "30min": 30,
    "hour": 60,
    "custom": None,
}
DEFAULT_CUSTOM_INTERVAL = 30
MIN_CUSTOM_INTERVAL = 5

OBSOLETE_KEYS = ("downloadImages", "imageFolder")


class ConfigError(Exception):
    """Raised when a persisted settings value has the wrong shape."""


def new_feed_id() -> str:
    return uuid.uuid4().hex


def default_config() -> GlobalConfig:
    """Return fresh settings with a single empty feed."""
    return GlobalConfig(feeds=[FeedConfig(id=new_feed_id())])


# -- serialisation -----------------------------------------------------------


def _to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _from_millis(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"expected a millisecond timestamp, got {value!r}")
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _feed_to_dict(feed: FeedConfig) -> Dict[str, Any]:
    return {
        "id": feed.id,
        "url": feed.url,
        "name": feed.name,
        "folder": feed.folder,
        "startDate": feed.start_date,
        "fetchedLinks": list(feed.fetched_links),
        "lastSync": _to_millis(feed.last_sync),
        "templateOverride": feed.template_override,
    }


def config_to_dict(config: GlobalConfig) -> Dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "feeds": [_feed_to_dict(feed) for feed in config.feeds],
        "folderStructure": config.folder_structure,
        "sharedFolder": config.shared_folder,
        "fetchInterval": config.fetch_interval,
        "customIntervalMinutes": config.custom_interval_minutes,
        "contentFormat": config.content_format,
        "template": config.template,
        "usePerFeedTemplates": config.use_per_feed_templates,
        "feedCache": {
            url: {
                "title": meta.title,
                "itemCount": meta.item_count,
                "lastBuildDate": meta.last_build_date,
                "lastChecked": _to_millis(meta.last_checked),
            }
            for url, meta in config.feed_cache.items()
        },
        "logging": {"level": config.logging.level, "file": config.logging.file},
    }


def _expect(value: Any, kind: Union[type, tuple], key: str) -> Any:
    if isinstance(value, bool) and kind is not bool:
        raise ConfigError(f"{key}: expected {kind}, got {value!r}")
    if not isinstance(value, kind):
        raise ConfigError(f"{key}: expected {kind}, got {value!r}")
    return value


def _string_list(value: Any, key: str) -> List[str]:
    _expect(value, list, key)
    return [_expect(item, str, key) for item in value]


def _read(
    data: Dict[str, Any], key: str, coerce: Callable[[Any, str], Any], default: Any
) -> Any:
    """Read one field, falling back to ``default`` when missing or malformed."""
    if key not in data:
        return default
    try:
        return coerce(data[key], key)
    except ConfigError as exc:
        logger.warning("Resetting malformed setting %s: %s", key, exc)
        return default


def _str(value: Any, key: str) -> str:
    return _expect(value, str, key)


def _optional_str(value: Any, key: str) -> Optional[str]:
    if value is None:
        return None
    return _expect(value, str, key)


def _bool(value: Any, key: str) -> bool:
    return _expect(value, bool, key)


def _int(value: Any, key: str) -> int:
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigError(f"{key}: expected an integer, got {value!r}") from exc
    return int(_expect(value, (int, float), key))


def _timestamp(value: Any, key: str) -> Optional[datetime]:
    return _from_millis(value)


def _choice(options) -> Callable[[Any, str], str]:
    def coerce(value: Any, key: str) -> str:
        if value not in options:
            raise ConfigError(f"{key}: {value!r} is not one of {', '.join(options)}")
        return value

    return coerce


def _feed_from_dict(data: Any) -> FeedConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"feed entry must be an object, got {data!r}")
    return FeedConfig(
        id=_read(data, "id", _str, "") or new_feed_id(),
        url=_read(data, "url", _str, ""),
        name=_read(data, "name", _str, "Feed"),
        folder=_read(data, "folder", _str, DEFAULT_FOLDER),
        start_date=_read(data, "startDate", _str, ""),
        fetched_links=_read(data, "fetchedLinks", _string_list, []),
        last_sync=_read(data, "lastSync", _timestamp, None),
        template_override=_read(data, "templateOverride", _str, ""),
    )


def _metadata_from_dict(data: Any) -> FeedMetadata:
    if not isinstance(data, dict):
        raise ConfigError(f"feed cache entry must be an object, got {data!r}")
    return FeedMetadata(
        title=_read(data, "title", _str, ""),
        item_count=_read(data, "itemCount", _int, 0),
        last_build_date=_read(data, "lastBuildDate", _optional_str, None),
        last_checked=_read(data, "lastChecked", _timestamp, None),
    )


def _feeds(value: Any, key: str) -> List[FeedConfig]:
    _expect(value, list, key)
    feeds = []
    for entry in value:
        try:
            feeds.append(_feed_from_dict(entry))
        except ConfigError as exc:
            logger.warning("Dropping malformed feed entry: %s", exc)
    return feeds


def _feed_cache(value: Any, key: str) -> Dict[str, FeedMetadata]:
    _expect(value, dict, key)
    cache = {}
    for url, entry in value.items():
        try:
            cache[url] = _metadata_from_dict(entry)
        except ConfigError as exc:
            logger.warning("Dropping malformed cache entry for %s: %s", url, exc)
    return cache


def _logging(value: Any, key: str) -> LoggingConfig:
    _expect(value, dict, key)
    return LoggingConfig(
        level=_read(value, "level", _str, "INFO"),
        file=_read(value, "file", _optional_str, None),
    )


def config_from_dict(data: Dict[str, Any]) -> GlobalConfig:
    """Build settings from an already migrated blob."""
    defaults = GlobalConfig()
    return GlobalConfig(
        feeds=_read(data, "feeds", _feeds, []),
        folder_structure=_read(
            data, "folderStructure", _choice(FOLDER_STRUCTURES), defaults.folder_structure
        ),
        shared_folder=_read(data, "sharedFolder", _str, defaults.shared_folder),
        fetch_interval=_read(
            data, "fetchInterval", _choice(tuple(FETCH_INTERVALS)), defaults.fetch_interval
        ),
        custom_interval_minutes=_read(
            data, "customIntervalMinutes", _int, defaults.custom_interval_minutes
        ),
        content_format=_read(
            data, "contentFormat", _choice(CONTENT_FORMATS), defaults.content_format
        ),
        template=_read(data, "template", _str, DEFAULT_TEMPLATE),
        use_per_feed_templates=_read(data, "usePerFeedTemplates", _bool, False),
        feed_cache=_read(data, "feedCache", _feed_cache, {}),
        logging=_read(data, "logging", _logging, LoggingConfig()),
    )


# -- migrations ----------------------------------------------------------------


def _migrate_v0(data: Dict[str, Any]) -> Dict[str, Any]:
    """Bring an unversioned plugin blob up to the first versioned shape."""
    defaults = config_to_dict(default_config())
    defaults.pop("schemaVersion")
    merged = {**defaults, **data}

    feeds = merged.get("feeds")
    if isinstance(feeds, list):
        merged["feeds"] = [
            {
                "id": new_feed_id(),
                "lastSync": None,
                "templateOverride": "",
                "startDate": "",
                "fetchedLinks": [],
                "folder": DEFAULT_FOLDER,
                **feed,
            }
            if isinstance(feed, dict)
            else feed
            for feed in feeds
        ]

    merged.setdefault("usePerFeedTemplates", False)
    merged.setdefault("feedCache", {})
    if merged.get("contentFormat") == "markdown":
        merged["contentFormat"] = "html"
    for key in OBSOLETE_KEYS:
        merged.pop(key, None)
    return merged


def _migrate_v1(data: Dict[str, Any]) -> Dict[str, Any]:
    """Deduplicate ledgers and make feed ids unique."""
    seen_ids = set()
    for feed in data.get("feeds") or []:
        if not isinstance(feed, dict):
            continue
        links = feed.get("fetchedLinks")
        if isinstance(links, list) and all(isinstance(link, str) for link in links):
            feed["fetchedLinks"] = list(dict.fromkeys(links))
        feed_id = feed.get("id")
        if not isinstance(feed_id, str) or not feed_id or feed_id in seen_ids:
            feed["id"] = new_feed_id()
        seen_ids.add(feed["id"])
    return data


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    0: _migrate_v0,
    1: _migrate_v1,
}


def migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the migration chain from the blob's version up to the current one."""
    version = data.get("schemaVersion", 0)
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        logger.warning("Unknown settings schema version %r; migrating from 0", version)
        version = 0
    if version > SCHEMA_VERSION:
        logger.warning(
            "Settings schema version %d is newer than supported %d",
            version,
            SCHEMA_VERSION,
        )
        return data

    while version < SCHEMA_VERSION:
        logger.info("Migrating settings from schema version %d", version)
        data = MIGRATIONS[version](data)
        version += 1
    data["schemaVersion"] = version
    return data


# -- storage -------------------------------------------------------------------


class SettingsStore:
    """Loads and saves the settings blob as a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.config: GlobalConfig = default_config()

    def load(self) -> GlobalConfig:
        if not self.path.exists():
            logger.info("No settings at %s; using defaults", self.path)
            self.config = default_config()
            return self.config

        logger.info("Loading settings from %s", self.path)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ConfigError("settings must be a JSON object")
        except (OSError, ValueError, ConfigError) as exc:
            backup = self.path.with_name(self.path.name + ".corrupt")
            logger.error(
                "Settings file %s is unreadable (%s); moving it to %s and using defaults",
                self.path,
                exc,
                backup,
            )
            try:
                os.replace(self.path, backup)
            except OSError as move_exc:
                logger.warning("Could not move %s aside: %s", self.path, move_exc)
            self.config = default_config()
            return self.config

        self.config = config_from_dict(migrate(data))
        return self.config

    def save(self) -> None:
        """Replace the settings file atomically with the current blob."""
        payload = json.dumps(config_to_dict(self.config), indent=2, ensure_ascii=False)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved settings to %s", self.path)


# -- operator actions ----------------------------------------------------------


def find_feed(config: GlobalConfig, key: str) -> FeedConfig:
    """Look up a feed by id, then by display name."""
    for feed in config.feeds:
        if feed.id == key:
            return feed
    for feed in config.feeds:
        if feed.name == key:
            return feed
    raise ValueError(f"No feed with id or name '{key}'")


def add_feed(
    config: GlobalConfig,
    url: str = "",
    name: Optional[str] = None,
    folder: str = DEFAULT_FOLDER,
    start_date: str = "",
    template_override: str = "",
) -> FeedConfig:
    feed = FeedConfig(
        id=new_feed_id(),
        url=url,
        name=name or f"Feed {len(config.feeds) + 1}",
        folder=folder,
        start_date=start_date,
        template_override=template_override,
    )
    config.feeds.append(feed)
    logger.info("Added feed '%s' (%s)", feed.name, feed.url or "no URL")
    return feed


FEED_FIELDS = ("url", "name", "folder", "start_date", "template_override")


def update_feed(feed: FeedConfig, **changes: str) -> FeedConfig:
    for key, value in changes.items():
        if key not in FEED_FIELDS:
            raise ValueError(f"Unknown feed field: {key}")
        setattr(feed, key, value)
    return feed


def remove_feed(config: GlobalConfig, feed: FeedConfig) -> None:
    config.feeds.remove(feed)
    if not any(other.url == feed.url for other in config.feeds):
        config.feed_cache.pop(feed.url, None)
    logger.info("Removed feed '%s'", feed.name)


def clear_history(feed: FeedConfig) -> int:
    """Empty the dedup ledger so every item can be imported again."""
    cleared = len(feed.fetched_links)
    feed.fetched_links = []
    logger.info("Cleared %d imported links for feed '%s'", cleared, feed.name)
    return cleared


SETTING_FIELDS = (
    "folder_structure",
    "shared_folder",
    "fetch_interval",
    "custom_interval_minutes",
    "content_format",
    "template",
    "use_per_feed_templates",
)


def update_settings(config: GlobalConfig, **changes: Any) -> GlobalConfig:
    """Validate and apply global setting changes."""
    for key, value in changes.items():
        if key not in SETTING_FIELDS:
            raise ValueError(f"Unknown setting: {key}")
        if key == "folder_structure" and value not in FOLDER_STRUCTURES:
            raise ValueError(f"Folder structure must be one of {', '.join(FOLDER_STRUCTURES)}")
        if key == "content_format" and value not in CONTENT_FORMATS:
            raise ValueError(f"Content format must be one of {', '.join(CONTENT_FORMATS)}")
        if key == "fetch_interval" and value not in FETCH_INTERVALS:
            raise ValueError(f"Fetch interval must be one of {', '.join(FETCH_INTERVALS)}")
        if key == "custom_interval_minutes":
            value = int(value)
            if value < MIN_CUSTOM_INTERVAL:
                raise ValueError(
                    f"Custom interval must be at least {MIN_CUSTOM_INTERVAL} minutes"
                )
        setattr(config, key, value)
    return config


# -- OPML import ---------------------------------------------------------------


@dataclass
class OpmlFeed:
    title: str
    url: str
    category: Optional[str]


def parse_opml(path: str) -> List[OpmlFeed]:
    """Parse an OPML outline file and return its feed subscriptions."""
    logger.info("Loading feed outline from %s", path)
    tree = ET.parse(path)
    body = tree.getroot().find("body")
    if body is None:
        raise ValueError("OPML file is missing the <body> section.")

    feeds: List[OpmlFeed] = []

    def walk(outline: ET.Element, current_category: Optional[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")

        if outline.attrib.get("type") == "rss" and feed_url:
            feeds.append(
                OpmlFeed(title=title or feed_url, url=feed_url, category=current_category)
            )
            return

        next_category = title if title else current_category
        for child in outline.findall("outline"):
            walk(child, next_category)

    for outline in body.findall("outline"):
        walk(outline, None)

    logger.info("Found %d feeds in outline", len(feeds))
    return feeds


def import_opml(config: GlobalConfig, path: str) -> List[FeedConfig]:
    """Add every outline feed whose URL is not configured yet.

    The outline category becomes the feed's folder for separate-folder mode.
    """
    known = {feed.url for feed in config.feeds if feed.url}
    added = []
    for entry in parse_opml(path):
        if entry.url in known:
            logger.debug("Skipping already configured feed %s", entry.url)
            continue
        added.append(
            add_feed(
                config,
                url=entry.url,
                name=entry.title,
                folder=entry.category or DEFAULT_FOLDER,
            )
        )
        known.add(entry.url)
    return added
