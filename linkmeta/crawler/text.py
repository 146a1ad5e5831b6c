# linkmeta/crawler/text.py
# Responsibility: Normalizes untrusted text pulled out of remote pages.

import html
import re
from typing import Optional

HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")


def decode_html_entities(value: str) -> str:
    if not value or "&" not in value:
        return value
    return html.unescape(value)


def strip_html_tags(value: str) -> str:
    return HTML_TAG_PATTERN.sub(" ", value)


def collapse_whitespace(value: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", value.replace("\u00a0", " ")).strip()


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """
    Decodes entities, drops markup and collapses whitespace.

    Returns:
        Optional[str]: The cleaned text, or None when nothing is left.
    """
    if not value or not isinstance(value, str):
        return None
    cleaned = collapse_whitespace(strip_html_tags(decode_html_entities(value)))
    return cleaned or None
