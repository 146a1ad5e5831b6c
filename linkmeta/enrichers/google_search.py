# linkmeta/enrichers/google_search.py
# Responsibility: Surfaces the query of Google search result URLs in the title.

from typing import Optional
from urllib.parse import parse_qs

from linkmeta.enrichers.base import Enricher, EnrichmentContext, normalize_title

GENERIC_TITLES = ("", "google", "google search")


class GoogleSearchEnricher(Enricher):
    name = "google_search"

    def matches(self, context: EnrichmentContext) -> bool:
        if context.parsed_url.path != "/search":
            return False
        return "google" in context.hostname.split(".")

    def enrich(self, context: EnrichmentContext) -> None:
        query = self._extract_query(context.parsed_url.query)
        if not query:
            return
        title = normalize_title(context.metadata.title)
        hostname = context.hostname[4:] if context.hostname.startswith("www.") else context.hostname
        # The hostname is what an untitled page falls back to
        if title not in GENERIC_TITLES and title != hostname:
            return
        context.metadata.title = f"Google Search — {query}"

    def _extract_query(self, raw_query: str) -> Optional[str]:
        params = parse_qs(raw_query)
        for key in ("q", "query"):
            values = params.get(key)
            if values:
                cleaned = " ".join(values[0].split())
                if cleaned:
                    return cleaned
        return None
