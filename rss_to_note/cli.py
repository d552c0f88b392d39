"""Command-line interface for the rss_to_note application."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from . import config as settings
from .config import SettingsStore
from .models import LoggingConfig
from .notifications import ConsoleNotifier
from .renderers import build_feeds_report, build_settings_report
from .runner import FeedSyncRunner
from .scheduler import resolve_interval_seconds, run_scheduler
from .vault import LocalVault

logger = logging.getLogger(__name__)

SETTINGS_DIR = ".rss-to-note"
SETTINGS_FILE = "data.json"


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="rss-to-note",
        description="Import new RSS/Atom feed items as notes in a folder of text files.",
    )
    parser.add_argument(
        "--vault",
        default=".",
        help="Root directory notes are written into (default: current directory).",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help=f"Path to the settings JSON file (default: <vault>/{SETTINGS_DIR}/{SETTINGS_FILE}).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides settings.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides settings.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Fetch all feeds now, or a single feed.")
    fetch.add_argument("--feed", metavar="ID_OR_NAME", help="Only fetch this feed.")

    test = commands.add_parser("test", help="Check that a feed can be fetched and parsed.")
    test.add_argument("feed", metavar="ID_OR_NAME_OR_URL")

    watch = commands.add_parser("watch", help="Fetch all feeds on the configured interval.")
    watch.add_argument("--now", action="store_true", help="Run one fetch before waiting.")
    watch.add_argument("--max-runs", type=int, default=None, help=argparse.SUPPRESS)

    feeds = commands.add_parser("feeds", help="Manage feed subscriptions.")
    feed_commands = feeds.add_subparsers(dest="feeds_command", required=True)
    feed_commands.add_parser("list", help="Show feeds and their import status.")

    add = feed_commands.add_parser("add", help="Subscribe to a feed.")
    add.add_argument("--url", required=True)
    _add_feed_options(add)

    update = feed_commands.add_parser("update", help="Change a feed's settings.")
    update.add_argument("feed", metavar="ID_OR_NAME")
    update.add_argument("--url")
    _add_feed_options(update)
    update.add_argument(
        "--clear-template", action="store_true", help="Remove the per-feed template."
    )

    remove = feed_commands.add_parser("remove", help="Unsubscribe from a feed.")
    remove.add_argument("feed", metavar="ID_OR_NAME")

    clear = feed_commands.add_parser(
        "clear", help="Forget imported items so everything is imported again."
    )
    clear.add_argument("feed", metavar="ID_OR_NAME")

    opml = feed_commands.add_parser("import-opml", help="Add feeds from an OPML file.")
    opml.add_argument("path")

    settings_parser = commands.add_parser("settings", help="Show or change global settings.")
    settings_commands = settings_parser.add_subparsers(dest="settings_command", required=True)
    settings_commands.add_parser("show", help="Print the current settings.")
    set_parser = settings_commands.add_parser("set", help="Change global settings.")
    set_parser.add_argument("--folder-structure", choices=("shared", "separate"))
    set_parser.add_argument("--shared-folder")
    set_parser.add_argument("--content-format", choices=("html", "htmlBlock", "htmlCallout"))
    set_parser.add_argument("--interval", choices=tuple(settings.FETCH_INTERVALS))
    set_parser.add_argument("--custom-minutes", type=int)
    set_parser.add_argument("--template-file", help="Read the note template from a file.")
    set_parser.add_argument("--per-feed-templates", choices=("on", "off"))

    return parser


def _add_feed_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name")
    parser.add_argument("--folder", help="Target folder in separate-folder mode.")
    parser.add_argument("--start-date", help="Only import items published on or after this date.")
    parser.add_argument("--template-file", help="Per-feed note template file.")


def configure_logging(
    defaults: LoggingConfig,
    level_name: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Initialise logging from the stored settings, with CLI values on top."""
    level_name = (level_name or defaults.level).upper()
    log_file = log_file or defaults.file
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)
    # HTTP connection chatter only at DEBUG.
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug("Logging at %s to console and %s", level_name, log_path)
    else:
        logger.debug("Logging at %s to console", level_name)


def _read_template(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ValueError(f"Template file not found: {path}")


def _run_fetch(args, runner: FeedSyncRunner) -> int:
    if args.feed:
        feed = settings.find_feed(runner.config, args.feed)
        result = runner.fetch_single_feed(feed)
        return 0 if result.ok else 1
    batch = runner.fetch_all_feeds()
    return 1 if batch.rejected or batch.failures else 0


def _run_test(args, runner: FeedSyncRunner) -> int:
    try:
        url = settings.find_feed(runner.config, args.feed).url
    except ValueError:
        if "://" not in args.feed:
            raise
        url = args.feed
    health = runner.test_feed_health(url)
    return 0 if health.success else 1


def _run_watch(args, runner: FeedSyncRunner) -> int:
    interval = resolve_interval_seconds(runner.config)
    if interval is None:
        raise ValueError(
            "Auto-fetch interval is 'manual'; set one with 'settings set --interval'."
        )
    if args.now:
        runner.fetch_all_feeds()
    try:
        run_scheduler(runner, interval, max_runs=args.max_runs)
    except KeyboardInterrupt:
        logger.info("Auto-fetch interrupted")
    return 0


def _run_feeds(args, store: SettingsStore) -> int:
    config = store.config
    command = args.feeds_command
    if command == "list":
        print(build_feeds_report(config))
        return 0

    if command == "add":
        feed = settings.add_feed(
            config,
            url=args.url,
            name=args.name,
            folder=args.folder or settings.DEFAULT_FOLDER,
            start_date=args.start_date or "",
            template_override=_read_template(args.template_file) or "",
        )
        store.save()
        print(f"Added {feed.name} [{feed.id}]")
        return 0

    if command == "import-opml":
        added = settings.import_opml(config, args.path)
        store.save()
        print(f"Imported {len(added)} feeds from {args.path}")
        return 0

    feed = settings.find_feed(config, args.feed)
    if command == "update":
        changes = {
            key: value
            for key, value in (
                ("url", args.url),
                ("name", args.name),
                ("folder", args.folder),
                ("start_date", args.start_date),
                ("template_override", _read_template(args.template_file)),
            )
            if value is not None
        }
        if args.clear_template:
            changes["template_override"] = ""
        settings.update_feed(feed, **changes)
        store.save()
        print(f"Updated {feed.name}")
    elif command == "remove":
        settings.remove_feed(config, feed)
        store.save()
        print(f"{feed.name} removed")
    elif command == "clear":
        settings.clear_history(feed)
        store.save()
        print(f"History cleared for {feed.name}")
    return 0


def _run_settings(args, store: SettingsStore) -> int:
    if args.settings_command == "show":
        print(build_settings_report(store.config))
        return 0

    changes = {
        key: value
        for key, value in (
            ("folder_structure", args.folder_structure),
            ("shared_folder", args.shared_folder),
            ("content_format", args.content_format),
            ("fetch_interval", args.interval),
            ("custom_interval_minutes", args.custom_minutes),
            ("template", _read_template(args.template_file)),
        )
        if value is not None
    }
    if args.per_feed_templates is not None:
        changes["use_per_feed_templates"] = args.per_feed_templates == "on"
    settings.update_settings(store.config, **changes)
    store.save()
    print(build_settings_report(store.config))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    vault_root = Path(args.vault)
    settings_path = (
        Path(args.settings) if args.settings else vault_root / SETTINGS_DIR / SETTINGS_FILE
    )

    try:
        store = SettingsStore(settings_path)
        config = store.load()

        # CLI overrides settings
        configure_logging(config.logging, args.log_level, args.log_file)

        if args.command == "feeds":
            return _run_feeds(args, store)
        if args.command == "settings":
            return _run_settings(args, store)

        runner = FeedSyncRunner(store, LocalVault(vault_root), notify=ConsoleNotifier())
        if args.command == "fetch":
            return _run_fetch(args, runner)
        if args.command == "test":
            return _run_test(args, runner)
        if args.command == "watch":
            return _run_watch(args, runner)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
