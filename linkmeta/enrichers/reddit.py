# linkmeta/enrichers/reddit.py
# Responsibility: Recovers thread title and body for Reddit discussion links.

import re
from typing import Optional
from urllib.parse import urlunsplit

from linkmeta.enrichers.base import Enricher, EnrichmentContext, normalize_title

HOST_PATTERN = re.compile(r"(^|\.)reddit\.com$", re.I)
THREAD_PATH_PATTERN = re.compile(r"/comments/")

# Rich card sub-format unpacked by the rendering layer
CARD_MARKER = "§REDDIT_CARD§"
CONTENT_MARKER = "§REDDIT_CONTENT§"


def build_card_description(post_title: str, body: str = "") -> str:
    description = f"{CARD_MARKER}{post_title}"
    if body:
        description += f"{CONTENT_MARKER}{body}"
    return description


class RedditEnricher(Enricher):
    """
    Reddit serves a generic shell page to most clients. For thread URLs the
    public JSON listing (same path + ".json") carries the real post.
    """

    name = "reddit"

    def matches(self, context: EnrichmentContext) -> bool:
        return bool(HOST_PATTERN.search(context.hostname))

    async def enrich(self, context: EnrichmentContext) -> None:
        metadata = context.metadata
        if not self._is_generic_title(metadata.title) and metadata.description:
            return
        if not THREAD_PATH_PATTERN.search(context.parsed_url.path):
            return

        response = await context.get(self._build_json_url(context))
        if response.status_code >= 400:
            return

        post = self._first_post(response.json())
        if not post:
            return

        post_title = self._string(post.get("title"))
        subreddit = self._string(post.get("subreddit"))
        body = post.get("selftext")
        if not isinstance(body, str) or not body.strip():
            body = post.get("public_description")
        body = " ".join(body.split()) if isinstance(body, str) else ""

        if subreddit:
            metadata.title = f"r/{subreddit}"
        elif post_title:
            metadata.title = post_title

        if post_title:
            card = context.sanitize_text(post_title) or post_title
            metadata.description = build_card_description(card, context.sanitize_text(body) or "")
        elif body:
            metadata.description = context.sanitize_text(body)

    def _build_json_url(self, context: EnrichmentContext) -> str:
        parsed = context.parsed_url
        path = parsed.path if parsed.path.endswith("/") else parsed.path + "/"
        return urlunsplit((parsed.scheme, parsed.netloc, path + ".json", parsed.query, ""))

    def _first_post(self, payload) -> Optional[dict]:
        try:
            post = payload[0]["data"]["children"][0]["data"]
        except (KeyError, IndexError, TypeError):
            return None
        return post if isinstance(post, dict) else None

    def _is_generic_title(self, title: Optional[str]) -> bool:
        normalized = normalize_title(title)
        return (
            not normalized
            or normalized in ("reddit.com", "reddit")
            or "the heart of the internet" in normalized
        )

    @staticmethod
    def _string(value) -> str:
        return value.strip() if isinstance(value, str) else ""
