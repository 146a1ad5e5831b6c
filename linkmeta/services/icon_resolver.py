# linkmeta/services/icon_resolver.py
# Responsibility: Picks the icon URL for a page's origin and remembers the answer.

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlencode, urlsplit

import httpx

from linkmeta.config.settings import settings
from linkmeta.crawler.errors import NetworkError
from linkmeta.crawler.fetcher import RequestExecutor
from linkmeta.services.icon_store import MISSING, IconStore

logger = logging.getLogger(__name__)

LOOKUP_ENDPOINT = "https://www.google.com/s2/favicons"
CONVENTIONAL_ICON_PATH = "/favicon.ico"
IMAGE_ACCEPT = "image/avif,image/webp,image/png,image/svg+xml,image/*;q=0.8,*/*;q=0.5"


def origin_of(url: str) -> Optional[str]:
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    origin = f"{parsed.scheme}://{parsed.hostname}"
    return f"{origin}:{port}" if port else origin


class IconResolver:
    """
    Resolution order:
    1. Icon store, by origin
    2. Third-party lookup URL (accepted without probing)
    3. Page-declared icons, then /favicon.ico, each validated by a probe
    """

    def __init__(
        self,
        executor: RequestExecutor,
        store: Optional[IconStore] = None,
        lookup_enabled: bool = settings.ICON.LOOKUP_ENABLED,
        lookup_size: int = settings.ICON.LOOKUP_SIZE,
    ):
        self.executor = executor
        self.store = store
        self.lookup_enabled = lookup_enabled
        self.lookup_size = lookup_size
        self._validation_cache: Dict[str, Optional[str]] = {}

    def clear_validation_cache(self) -> None:
        self._validation_cache.clear()

    def build_lookup_url(self, hostname: Optional[str]) -> Optional[str]:
        if not self.lookup_enabled or not hostname:
            return None
        return f"{LOOKUP_ENDPOINT}?{urlencode({'domain': hostname, 'sz': self.lookup_size})}"

    async def resolve_icon(self, page_url: str, candidates: Optional[Iterable[str]] = None) -> Optional[str]:
        origin = origin_of(page_url)
        if origin is None:
            return None

        if self.store is not None:
            cached = self.store.get(origin)
            if cached is not MISSING:
                return cached

        lookup = self.build_lookup_url(urlsplit(page_url).hostname)
        if lookup:
            self._remember(origin, lookup)
            return lookup

        for candidate in self._candidate_list(origin, candidates):
            verified = await self.validate_icon(candidate)
            if verified:
                self._remember(origin, verified)
                return verified

        self._remember(origin, None)
        return None

    async def validate_icon(self, candidate: Optional[str]) -> Optional[str]:
        """
        Probes a candidate with HEAD, falling back to GET when HEAD is
        rejected. Only image content types are accepted.
        """
        if not candidate:
            return None
        if candidate.startswith("data:"):
            self._validation_cache[candidate] = candidate
            return candidate
        if candidate in self._validation_cache:
            return self._validation_cache[candidate]

        headers = {"Accept": IMAGE_ACCEPT}
        verified: Optional[str] = None
        try:
            response = await self.executor.request(candidate, method="HEAD", headers=headers)
            head_rejected = response.status_code >= 400
            if self._is_image(response):
                verified = candidate
        except NetworkError:
            head_rejected = True

        if verified is None and head_rejected:
            try:
                response = await self.executor.request(candidate, method="GET", headers=headers)
                if self._is_image(response):
                    verified = candidate
            except NetworkError as e:
                logger.debug("[IconResolver] Probe failed for %s: %s", candidate, e)

        self._validation_cache[candidate] = verified
        return verified

    def _candidate_list(self, origin: str, candidates: Optional[Iterable[str]]) -> List[str]:
        ordered: List[str] = []
        for candidate in list(candidates or []) + [origin + CONVENTIONAL_ICON_PATH]:
            if candidate and candidate not in ordered:
                ordered.append(candidate)
        return ordered

    def _remember(self, origin: str, icon_url: Optional[str]) -> None:
        if self.store is not None:
            self.store.set(origin, icon_url)

    @staticmethod
    def _is_image(response: httpx.Response) -> bool:
        if not 200 <= response.status_code < 400:
            return False
        content_type = RequestExecutor.get_header(response, "content-type") or ""
        return "image" in content_type.lower()
