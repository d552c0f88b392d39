"""Note templates and the Jinja2 environment for package report templates."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional

from jinja2 import Environment, FileSystemLoader

PLACEHOLDERS = ("title", "author", "link", "pubDate", "feedName", "content")

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

_ENV: Environment | None = None


def render_note_template(template: str, fields: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` tokens with field values.

    Unknown names are left as written. Substitution is a single pass, so
    values that themselves contain ``{{...}}`` are not expanded again.
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in fields:
            return str(fields[name])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(substitute, template)


def _format_timestamp(value: Optional[datetime]) -> str:
    """Render an aware timestamp in local time for reports."""
    if value is None:
        return ""
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = Path(__file__).resolve().parent / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
        _ENV.filters["timestamp"] = _format_timestamp
    return _ENV
