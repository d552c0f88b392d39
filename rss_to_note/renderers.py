"""Rendering helpers for operator-facing reports."""

from __future__ import annotations

from .models import FOLDER_SEPARATE, GlobalConfig
from .templating import get_environment


def build_feeds_report(config: GlobalConfig) -> str:
    """Render the per-feed status listing."""
    template = get_environment().get_template("feeds.txt.j2")
    return template.render(
        feeds=config.feeds,
        cache=config.feed_cache,
        separate=config.folder_structure == FOLDER_SEPARATE,
        use_per_feed_templates=config.use_per_feed_templates,
    ).rstrip()


def build_settings_report(config: GlobalConfig) -> str:
    """Render the global settings summary."""
    template = get_environment().get_template("settings.txt.j2")
    return template.render(config=config).rstrip()
