"""Markup cleanup rules applied to feed item bodies."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import FORMAT_HTML_BLOCK, FORMAT_HTML_CALLOUT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewriteRule:
    """A single ordered text rewrite."""

    name: str
    pattern: re.Pattern
    replacement: str = ""

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


_I = re.IGNORECASE
_IS = re.IGNORECASE | re.DOTALL

# Order matters: each rule sees the output of the previous one.
RULES: Sequence[RewriteRule] = (
    RewriteRule(
        "gmail-quote",
        re.compile(r'<div[^>]*class="gmail_quote(?:_container)?[^"]*"[^>]*>.*?</div>', _IS),
    ),
    RewriteRule("dir-auto", re.compile(r'\s*dir="auto"', _I)),
    RewriteRule("empty-tags", re.compile(r"<(u|div|p|span)></\1>", _I)),
    RewriteRule(
        "newsletter-footer-hr",
        re.compile(
            r"<hr\s*/?>\s*<p>\s*<small>.*?Kill the Newsletter.*?</small>\s*</p>", _IS
        ),
    ),
    RewriteRule(
        "newsletter-footer",
        re.compile(r"<p>\s*<small>.*?Kill the Newsletter.*?</small>\s*</p>", _IS),
    ),
    RewriteRule("line-breaks", re.compile(r"(?:<br\s*/?>){3,}", _I), "<br><br>"),
    RewriteRule("whitespace", re.compile(r"\s{3,}"), " "),
)


def _apply_rules(text: str, rules: Sequence[RewriteRule]) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text.strip()


def clean_html(html: Optional[str], rules: Sequence[RewriteRule] = RULES) -> str:
    """Strip noisy markup from an item body.

    The rule chain is repeated until the text stops changing, so markup
    exposed by one pass (e.g. a div emptied by the span rule) is removed too.
    Every rule only shortens the text, so the loop terminates.
    """
    if not html:
        return ""

    current = html
    while True:
        cleaned = _apply_rules(current, rules)
        if cleaned == current:
            return cleaned
        current = cleaned


def format_content(html: Optional[str], content_format: str) -> str:
    """Clean the body and wrap it according to the content-format mode."""
    if not html:
        return ""

    cleaned = clean_html(html)
    if content_format == FORMAT_HTML_BLOCK:
        return "```html\n" + cleaned + "\n```"
    if content_format == FORMAT_HTML_CALLOUT:
        quoted = cleaned.replace("\n", "\n> ")
        return "> [!note] Original HTML\n> ```html\n> " + quoted + "\n> ```"
    return cleaned
