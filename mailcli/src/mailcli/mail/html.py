"""Small HTML helpers used by compose and reply quoting."""
from __future__ import annotations

import html
import re


_SCRIPT_STYLE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_HTML_PREFIXES = ("<!doctype", "<html", "<head", "<body", "<meta")


def looks_like_html(text: str) -> bool:
    """Best-effort sniff for markup sent as ``text/plain``."""

    lowered = text.strip().lower()
    if not lowered:
        return False
    if lowered.startswith(_HTML_PREFIXES):
        return True
    return "<html" in lowered


def escape_text_to_html(text: str) -> str:
    """HTML-escape ``text`` and turn newlines into ``<br>`` line breaks."""

    if not text:
        return ""
    return html.escape(text).replace("\n", "<br>\n")


def strip_html_tags(markup: str) -> str:
    """Reduce markup to plain text: drop script/style blocks and tags, collapse spaces."""

    if not markup:
        return ""
    without_blocks = _SCRIPT_STYLE.sub(" ", markup)
    without_tags = _TAG.sub(" ", without_blocks)
    return _WHITESPACE.sub(" ", html.unescape(without_tags)).strip()
