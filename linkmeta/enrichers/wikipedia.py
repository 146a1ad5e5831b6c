# linkmeta/enrichers/wikipedia.py
# Responsibility: Fills in article summaries for Wikipedia links.

import re
from typing import Optional
from urllib.parse import unquote, urlencode

from linkmeta.enrichers.base import Enricher, EnrichmentContext, normalize_title

HOST_PATTERN = re.compile(r"\.wikipedia\.org$", re.I)
ARTICLE_PATH_PATTERN = re.compile(r"/wiki/([^/?#]+)")
SITE_NAME = "Wikipedia"


class WikipediaEnricher(Enricher):
    """
    Uses the public MediaWiki query API to recover the article intro when
    the page itself yields no description or only a generic title.
    """

    name = "wikipedia"

    def matches(self, context: EnrichmentContext) -> bool:
        return bool(HOST_PATTERN.search(context.hostname))

    async def enrich(self, context: EnrichmentContext) -> None:
        metadata = context.metadata
        metadata.site_name = SITE_NAME

        generic_title = self._is_generic_title(metadata.title, context.hostname)
        if metadata.description and not generic_title:
            return

        match = ARTICLE_PATH_PATTERN.search(context.parsed_url.path)
        if not match:
            return
        article = unquote(match.group(1))

        response = await context.get(self._build_api_url(context, article))
        if response.status_code >= 400:
            return

        page = self._first_page(response.json())
        if not page:
            return

        if not metadata.description:
            # Prefer the intro extract over the one-line description
            summary = (page.get("extract") or page.get("description") or "").strip()
            if summary:
                metadata.description = summary

        if generic_title:
            title = context.sanitize_text(page.get("title") or article.replace("_", " "))
            if title:
                metadata.title = title

    def _build_api_url(self, context: EnrichmentContext, article: str) -> str:
        params = {
            "action": "query",
            "format": "json",
            "titles": article,
            "prop": "extracts|description",
            "exintro": "1",
            "explaintext": "1",
            "origin": "*",
        }
        origin = f"{context.parsed_url.scheme}://{context.parsed_url.netloc}"
        return f"{origin}/w/api.php?{urlencode(params)}"

    def _first_page(self, payload) -> Optional[dict]:
        if not isinstance(payload, dict):
            return None
        pages = (payload.get("query") or {}).get("pages")
        if not isinstance(pages, dict) or not pages:
            return None
        page = next(iter(pages.values()))
        return page if isinstance(page, dict) else None

    def _is_generic_title(self, title: Optional[str], hostname: str) -> bool:
        normalized = normalize_title(title)
        bare_host = hostname[4:] if hostname.startswith("www.") else hostname
        return normalized in ("", "wikipedia", hostname, bare_host)
