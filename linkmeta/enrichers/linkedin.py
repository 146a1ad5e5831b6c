# linkmeta/enrichers/linkedin.py
# Responsibility: Cleans LinkedIn titles into "Author — content" form.

import re
from typing import List, Optional, Tuple

from linkmeta.enrichers.base import Enricher, EnrichmentContext

HOST_PATTERN = re.compile(r"(^|\.)linkedin\.com$", re.I)
LEADING_HASHTAGS_PATTERN = re.compile(r"^(#\w+\s*)+")
COMMENT_COUNT_PATTERN = re.compile(r"^\d+\s+comments?$", re.I)
CONTENT_SEPARATOR = "—"
SITE_NAME = "LinkedIn"


def is_comment_count(text: str) -> bool:
    return bool(COMMENT_COUNT_PATTERN.match(text.strip()))


def remove_leading_hashtags(text: str) -> str:
    return LEADING_HASHTAGS_PATTERN.sub("", text.strip()).strip()


def _split_on_separator(text: str) -> Tuple[str, str]:
    before, _, after = text.partition(CONTENT_SEPARATOR)
    return before.strip(), after.strip()


def clean_title(raw_title: str) -> str:
    """
    LinkedIn titles look like "#tag #tag | Author | 17 comments — Post text".

    Example:
        "#personalbranding | Jane Doe | 17 comments — We are hiring"
        becomes "Jane Doe — We are hiring"
    """
    original = raw_title.strip()
    if not original:
        return original

    author: Optional[str] = None
    content: Optional[str] = None
    parts: List[str] = [p.strip() for p in original.split("|")]

    # 1. Pipe separated: skip the hashtag block and comment counts
    if len(parts) >= 2:
        start = 1 if parts[0].startswith("#") else 0
        for part in parts[start:]:
            if not part or part.startswith("#") or is_comment_count(part):
                continue
            if CONTENT_SEPARATOR in part:
                before, after = _split_on_separator(part)
                if before and not is_comment_count(before):
                    author = before
                if after:
                    content = after
                break
            if not author:
                author = part

        if not content:
            for part in parts:
                if CONTENT_SEPARATOR in part:
                    _, after = _split_on_separator(part)
                    if after:
                        content = after
                        break

    # 2. Single segment with a separator
    if not author and not content and CONTENT_SEPARATOR in original:
        before, after = _split_on_separator(original)
        author = remove_leading_hashtags(before) or None
        content = after or None

    # 3. No structure at all
    if not author and not content:
        return remove_leading_hashtags(original) or original

    if author and content:
        return f"{author} {CONTENT_SEPARATOR} {content}"
    return content or author or original


class LinkedInEnricher(Enricher):
    name = "linkedin"

    def matches(self, context: EnrichmentContext) -> bool:
        return bool(HOST_PATTERN.search(context.hostname))

    def enrich(self, context: EnrichmentContext) -> None:
        metadata = context.metadata
        if metadata.title:
            cleaned = clean_title(metadata.title)
            if cleaned and cleaned != metadata.title:
                metadata.title = cleaned
        if not metadata.site_name:
            metadata.site_name = SITE_NAME
