# linkmeta/crawler/parser.py
# Responsibility: Extract title, description, site name and icon candidates from raw pages.

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, TypedDict
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, FeatureNotFound, Tag

from linkmeta.config.settings import settings
from linkmeta.crawler.text import sanitize_text

logger = logging.getLogger(__name__)


# -------------------------------
# Constants
# -------------------------------
STRATEGY_DOCUMENT = "document"
STRATEGY_PATTERN = "pattern"

TITLE_META_KEYS = ["og:title", "twitter:title", "title"]
DESCRIPTION_META_KEYS = ["og:description", "twitter:description", "description"]
SITE_NAME_META_KEYS = ["og:site_name", "application-name"]

STRUCTURED_TITLE_KEYS = ("name", "headline", "title")
STRUCTURED_DESCRIPTION_KEYS = ("description", "summary")

CONVENTIONAL_ICON_PATH = "/favicon.ico"

# Regex fallback patterns (both attribute orders are common in the wild)
TITLE_TAG_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.I | re.S)
LINK_TAG_PATTERN = re.compile(r"<link\b[^>]*>", re.I)
REL_ATTR_PATTERN = re.compile(r"""\brel\s*=\s*["']([^"']*)["']""", re.I)
HREF_ATTR_PATTERN = re.compile(r"""\bhref\s*=\s*["']([^"']+)["']""", re.I)
LD_JSON_PATTERN = re.compile(
    r"""<script[^>]+type\s*=\s*["']application/ld\+json["'][^>]*>(.*?)</script>""",
    re.I | re.S,
)


# -------------------------------
# TypedDicts
# -------------------------------
class ParsedCandidateSet(TypedDict):
    titles: List[str]
    descriptions: List[str]
    site_names: List[str]
    icons: List[str]
    strategy: str


class ParsedMetadata(TypedDict):
    title: Optional[str]
    description: Optional[str]
    site_name: Optional[str]
    icons: List[str]


def empty_candidates(strategy: str = STRATEGY_DOCUMENT) -> ParsedCandidateSet:
    return ParsedCandidateSet(titles=[], descriptions=[], site_names=[], icons=[], strategy=strategy)


def pick_first_non_empty(
    values: Iterable[Optional[str]],
    sanitize: Callable[[Optional[str]], Optional[str]] = sanitize_text,
) -> Optional[str]:
    """Returns the first candidate that is still non-empty after sanitizing."""
    for value in values:
        cleaned = sanitize(value)
        if cleaned:
            return cleaned
    return None


def conventional_icon_url(url: str) -> Optional[str]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}{CONVENTIONAL_ICON_PATH}"


def find_structured_value(node: Any, keys: Iterable[str]) -> Optional[str]:
    """
    Depth-first search through decoded JSON-LD for the first string stored
    under one of the given keys.
    """
    keys = tuple(keys)
    if isinstance(node, dict):
        for key in keys:
            value = node.get(key)
            if isinstance(value, str) and value.strip():
                return value
        for value in node.values():
            found = find_structured_value(value, keys)
            if found:
                return found
    elif isinstance(node, list):
        for item in node:
            found = find_structured_value(item, keys)
            if found:
                return found
    return None


# -------------------------------
# Base Parser
# -------------------------------
class BaseParser(ABC):
    @abstractmethod
    def parse(self, url: str, content: str) -> ParsedCandidateSet:
        pass

    def extract(self, url: str, content: str) -> ParsedMetadata:
        """Parses and reduces every candidate list to its best value."""
        candidates = self.parse(url, content)
        return ParsedMetadata(
            title=pick_first_non_empty(candidates["titles"]),
            description=pick_first_non_empty(candidates["descriptions"]),
            site_name=pick_first_non_empty(candidates["site_names"]),
            icons=list(candidates["icons"]),
        )


# -------------------------------
# Default HTML Parser
# -------------------------------
class DefaultHTMLParser(BaseParser):
    """
    Metadata parser using BeautifulSoup, with a regex fallback.
    - Open Graph / Twitter card / generic meta tags
    - <title> elements
    - JSON-LD structured data
    - Icon link elements
    Never raises: a failing field yields an empty candidate list.
    """

    def __init__(self, features: str = settings.FETCHER.PARSER_FEATURES):
        self.features = features

    def parse(self, url: str, content: str) -> ParsedCandidateSet:
        content = content if isinstance(content, str) else ""
        soup = self._build_document(content)
        if soup is None:
            return self._parse_with_patterns(url, content)
        return self._parse_document(url, soup)

    def _build_document(self, content: str) -> Optional[BeautifulSoup]:
        try:
            return BeautifulSoup(content, self.features)
        except FeatureNotFound:
            logger.warning("[Parser] Tree builder %r unavailable, using pattern fallback", self.features)
        except Exception as e:
            logger.warning("[Parser] Document build failed, using pattern fallback: %s", e)
        return None

    # ---------------------------
    # Document strategy
    # ---------------------------
    def _parse_document(self, url: str, soup: BeautifulSoup) -> ParsedCandidateSet:
        result = empty_candidates(STRATEGY_DOCUMENT)

        meta_index = self._safe(lambda: self._build_meta_index(soup), {})
        structured = self._safe(lambda: self._load_structured_data(soup), [])

        result["titles"] = self._safe(lambda: self._title_candidates(soup, meta_index, structured), [])
        result["descriptions"] = self._safe(
            lambda: self._description_candidates(meta_index, structured), []
        )
        result["site_names"] = self._safe(
            lambda: [v for key in SITE_NAME_META_KEYS for v in meta_index.get(key, [])], []
        )
        result["icons"] = self._safe(lambda: self._icon_candidates(url, soup), [])
        if not result["icons"]:
            fallback = conventional_icon_url(url)
            if fallback:
                result["icons"] = [fallback]
        return result

    def _build_meta_index(self, soup: BeautifulSoup) -> Dict[str, List[str]]:
        """Maps lower-cased property/name attributes to their content values, in page order."""
        index: Dict[str, List[str]] = {}
        for tag in soup.find_all("meta"):
            if not isinstance(tag, Tag):
                continue
            content = tag.get("content")
            if not isinstance(content, str):
                continue
            for attr in ("property", "name"):
                key = tag.get(attr)
                if isinstance(key, str) and key.strip():
                    index.setdefault(key.strip().lower(), []).append(content)
        return index

    def _title_candidates(
        self, soup: BeautifulSoup, meta_index: Dict[str, List[str]], structured: List[Any]
    ) -> List[str]:
        candidates: List[str] = []
        for key in TITLE_META_KEYS:
            candidates.extend(meta_index.get(key, []))

        # Page-declared title
        if soup.head is not None:
            head_title = soup.head.find("title")
            if isinstance(head_title, Tag):
                candidates.append(head_title.get_text())

        # Any title element
        title_tag = soup.find("title")
        if isinstance(title_tag, Tag):
            candidates.append(title_tag.get_text())

        found = self._first_structured(structured, STRUCTURED_TITLE_KEYS)
        if found:
            candidates.append(found)
        return candidates

    def _description_candidates(
        self, meta_index: Dict[str, List[str]], structured: List[Any]
    ) -> List[str]:
        candidates: List[str] = []
        for key in DESCRIPTION_META_KEYS:
            candidates.extend(meta_index.get(key, []))
        found = self._first_structured(structured, STRUCTURED_DESCRIPTION_KEYS)
        if found:
            candidates.append(found)
        return candidates

    def _icon_candidates(self, url: str, soup: BeautifulSoup) -> List[str]:
        icons: List[str] = []
        for link in soup.find_all("link"):
            if not isinstance(link, Tag):
                continue
            rel = link.get("rel")
            rel_text = " ".join(rel) if isinstance(rel, list) else (rel or "")
            if "icon" not in rel_text.lower():
                continue
            resolved = self._resolve_url(url, link.get("href"))
            if resolved and resolved not in icons:
                icons.append(resolved)
        return icons

    def _load_structured_data(self, soup: BeautifulSoup) -> List[Any]:
        blocks: List[Any] = []
        for script in soup.find_all("script", attrs={"type": re.compile(r"ld\+json", re.I)}):
            decoded = self._decode_json(script.string or script.get_text())
            if decoded is not None:
                blocks.append(decoded)
        return blocks

    # ---------------------------
    # Pattern strategy
    # ---------------------------
    def _parse_with_patterns(self, url: str, content: str) -> ParsedCandidateSet:
        result = empty_candidates(STRATEGY_PATTERN)

        def meta_values(keys: List[str]) -> List[str]:
            return [v for key in keys for v in self._regex_meta(content, key)]

        structured = self._safe(
            lambda: [
                d for d in (self._decode_json(m) for m in LD_JSON_PATTERN.findall(content)) if d is not None
            ],
            [],
        )

        titles = self._safe(lambda: meta_values(TITLE_META_KEYS[:2]), [])
        titles += self._safe(lambda: TITLE_TAG_PATTERN.findall(content)[:1], [])
        found = self._first_structured(structured, STRUCTURED_TITLE_KEYS)
        if found:
            titles.append(found)
        result["titles"] = titles

        descriptions = self._safe(lambda: meta_values(DESCRIPTION_META_KEYS), [])
        found = self._first_structured(structured, STRUCTURED_DESCRIPTION_KEYS)
        if found:
            descriptions.append(found)
        result["descriptions"] = descriptions

        result["site_names"] = self._safe(lambda: meta_values(SITE_NAME_META_KEYS[:1]), [])
        result["icons"] = self._safe(lambda: self._regex_icons(url, content), [])
        if not result["icons"]:
            fallback = conventional_icon_url(url)
            if fallback:
                result["icons"] = [fallback]
        return result

    def _regex_meta(self, content: str, key: str) -> List[str]:
        escaped = re.escape(key)
        patterns = [
            rf"""<meta[^>]+(?:property|name)\s*=\s*["']{escaped}["'][^>]*?content\s*=\s*["']([^"']*)["']""",
            rf"""<meta[^>]+content\s*=\s*["']([^"']*)["'][^>]*?(?:property|name)\s*=\s*["']{escaped}["']""",
        ]
        values: List[str] = []
        for pattern in patterns:
            values.extend(re.findall(pattern, content, re.I))
        return values

    def _regex_icons(self, url: str, content: str) -> List[str]:
        icons: List[str] = []
        for tag in LINK_TAG_PATTERN.findall(content):
            rel = REL_ATTR_PATTERN.search(tag)
            if not rel or "icon" not in rel.group(1).lower():
                continue
            href = HREF_ATTR_PATTERN.search(tag)
            resolved = self._resolve_url(url, href.group(1) if href else None)
            if resolved and resolved not in icons:
                icons.append(resolved)
        return icons

    # ---------------------------
    # Helpers
    # ---------------------------
    def _resolve_url(self, base_url: str, raw_url: Any) -> Optional[str]:
        if not isinstance(raw_url, str) or not raw_url.strip():
            return None
        raw_url = raw_url.strip()
        # Inline images are kept as-is
        if raw_url[:11].lower() == "data:image/":
            return raw_url
        try:
            full_url = urljoin(base_url, raw_url)
            if urlparse(full_url).scheme not in ("http", "https"):
                return None
            return full_url
        except ValueError:
            return None

    def _decode_json(self, raw: Optional[str]) -> Any:
        if not raw or not raw.strip():
            return None
        try:
            return json.loads(raw)
        except (ValueError, TypeError):
            return None

    def _first_structured(self, blocks: List[Any], keys: Iterable[str]) -> Optional[str]:
        for block in blocks:
            found = find_structured_value(block, keys)
            if found:
                return found
        return None

    def _safe(self, producer: Callable[[], Any], default: Any) -> Any:
        try:
            return producer()
        except Exception as e:
            logger.debug("[Parser] Field extraction failed: %s", e)
            return default


# -------------------------------
# Singleton Parser
# -------------------------------
PageParser = DefaultHTMLParser()
