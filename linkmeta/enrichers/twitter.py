# linkmeta/enrichers/twitter.py
# Responsibility: Replaces X/Twitter's generic shell metadata with the account and post text.

import re
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from linkmeta.enrichers.base import Enricher, EnrichmentContext, normalize_title

HOST_PATTERN = re.compile(r"(^|\.)(twitter|x)\.com$", re.I)
STATUS_PATH_PATTERN = re.compile(r"/status/\d+")
OEMBED_ENDPOINT = "https://publish.twitter.com/oembed"

GENERIC_TITLES = ("", "x.com", "twitter.com", "x", "twitter")
GENERIC_FRAGMENTS = ("x (formerly twitter)", "on x", "on twitter")


def is_generic_text(value: Optional[str]) -> bool:
    normalized = normalize_title(value)
    return normalized in GENERIC_TITLES or any(f in normalized for f in GENERIC_FRAGMENTS)


class TwitterEnricher(Enricher):
    name = "twitter"

    def matches(self, context: EnrichmentContext) -> bool:
        return bool(HOST_PATTERN.search(context.hostname))

    async def enrich(self, context: EnrichmentContext) -> None:
        metadata = context.metadata
        if not is_generic_text(metadata.title):
            return

        username = self._extract_username(context.parsed_url.path)
        if not username:
            return

        metadata.title = f"@{username}"
        if metadata.description and is_generic_text(metadata.description):
            metadata.description = None

        if STATUS_PATH_PATTERN.search(context.parsed_url.path):
            text = await self._fetch_post_text(context)
            if text:
                metadata.description = text

    def _extract_username(self, path: str) -> Optional[str]:
        segments = [s for s in path.split("/") if s]
        return segments[0] if segments else None

    async def _fetch_post_text(self, context: EnrichmentContext) -> Optional[str]:
        oembed_url = f"{OEMBED_ENDPOINT}?url={quote(context.original_url, safe='')}"
        response = await context.get(oembed_url)
        if response.status_code != 200:
            return None

        payload = response.json()
        markup = payload.get("html") if isinstance(payload, dict) else None
        if not markup:
            return None

        paragraph = BeautifulSoup(markup, "html.parser").find("p")
        if paragraph is None:
            return None
        return context.sanitize_text(paragraph.get_text(" "))
