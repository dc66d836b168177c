"""Helpers for describing a fetched RSS/Atom document.

``get_feed`` returns the raw body it received from RSSHub.  When that body is a
feed, ``summarize_feed`` adds a short overview (title, link, plain-text
description, entry count) so a client does not have to parse XML to know what
it got.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Dict, Optional

import feedparser
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_FEED_MIME_HINTS = ("xml", "rss", "atom")


def clean_html(html_content: str) -> str:
    soup = BeautifulSoup(html_content, "html.parser")
    return soup.get_text(separator=" ", strip=True)


def looks_like_feed(content_type: Optional[str]) -> bool:
    """``True`` when *content_type* is one RSSHub uses for RSS/Atom output."""
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return any(hint in mime for hint in _FEED_MIME_HINTS)


def summarize_feed(body: bytes) -> Optional[Dict[str, Any]]:
    """Parse the raw response *body* with ``feedparser`` and return its headline metadata.

    *body* is handed to ``feedparser`` as a stream; given a ``str`` or ``bytes``
    it would first try the value as a URL or a local file path. Bytes also let
    the XML declaration pick the encoding.

    Returns ``None`` when the document is not a usable feed, i.e. the parser
    flagged it as malformed and found no entries and no title.
    """
    parsed = feedparser.parse(io.BytesIO(body))
    feed = parsed.get("feed", {})
    if parsed.bozo and not parsed.entries and not feed.get("title"):
        logger.debug("Body is not a feed: %s", parsed.get("bozo_exception"))
        return None

    description = feed.get("subtitle") or feed.get("description") or ""
    return {
        "title": feed.get("title", ""),
        "link": feed.get("link", ""),
        "description": clean_html(description) if description else "",
        "entryCount": len(parsed.entries),
    }
