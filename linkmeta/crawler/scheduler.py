# linkmeta/crawler/scheduler.py
# Responsibility: Entry point of the preview pipeline. Enforces the concurrency ceiling,
# deduplicates in-flight requests and composes fetch, parse, classify, enrich and icon steps.

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from linkmeta.config.settings import AppSettings, settings
from linkmeta.crawler.classifier import ErrorClassifier
from linkmeta.crawler.errors import HttpError, NetworkError, PreviewError, SoftError
from linkmeta.crawler.fetcher import RequestExecutor
from linkmeta.crawler.models import (
    LinkMetadata,
    PreviewSettings,
    build_fallback_metadata,
    fallback_title,
)
from linkmeta.crawler.parser import BaseParser, DefaultHTMLParser
from linkmeta.crawler.text import sanitize_text
from linkmeta.enrichers.base import Enricher, EnrichmentContext
from linkmeta.enrichers.chain import EnrichmentChain
from linkmeta.enrichers.registry import create_default_enrichers
from linkmeta.services.durable import build_durable_storage
from linkmeta.services.icon_resolver import IconResolver
from linkmeta.services.icon_store import IconStore
from linkmeta.services.result_cache import ResultCache

logger = logging.getLogger(__name__)

MIN_TIMEOUT_MS = 500


class PreviewScheduler:
    """
    Central logic for turning URLs into LinkMetadata.
    fetch() never raises: every path ends in a valid LinkMetadata.
    """

    def __init__(
        self,
        executor: Optional[RequestExecutor] = None,
        parser: Optional[BaseParser] = None,
        classifier: Optional[ErrorClassifier] = None,
        chain: Optional[EnrichmentChain] = None,
        icon_store: Optional[IconStore] = None,
        icon_resolver: Optional[IconResolver] = None,
        result_cache: Optional[ResultCache] = None,
        preview_settings: Optional[PreviewSettings] = None,
        max_concurrent: int = settings.FETCHER.MAX_CONCURRENT_REQUESTS,
        storage: Any = None,
    ):
        self.preview_settings = preview_settings or PreviewSettings(
            request_timeout_ms=settings.PREVIEW.REQUEST_TIMEOUT_MS,
            show_error_warnings=settings.PREVIEW.SHOW_ERROR_WARNINGS,
        )
        self.executor = executor or RequestExecutor(timeout_ms=self.preview_settings.request_timeout_ms)
        self.parser = parser or DefaultHTMLParser()
        self.classifier = classifier or ErrorClassifier()
        self.chain = chain if chain is not None else EnrichmentChain(create_default_enrichers())
        self.icon_store = icon_store
        self.icon_resolver = icon_resolver or IconResolver(self.executor, icon_store)
        self.result_cache = result_cache if result_cache is not None else ResultCache()
        self.storage = storage

        self.max_concurrent = max(1, max_concurrent)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._inflight: Dict[str, "asyncio.Task[LinkMetadata]"] = {}
        self.active_requests = 0
        # Callers that joined a fetch already in flight, since the last clear
        self.inflight_joins = 0

    # ---------------------------
    # Public entry point
    # ---------------------------
    @staticmethod
    def normalize_url(url: Any) -> str:
        """Trim only: case and trailing slashes stay significant."""
        if not isinstance(url, str):
            url = "" if url is None else str(url)
        return url.strip()

    async def fetch(self, url: str) -> LinkMetadata:
        key = self.normalize_url(url)

        cached = self.result_cache.get(key)
        if cached is not None:
            logger.debug("[Scheduler] Cache hit: %s", key)
            return cached.model_copy()

        task = self._inflight.get(key)
        if task is None:
            # Registered before waiting for a slot so later callers join it
            task = asyncio.ensure_future(self._run(key, self.result_cache.generation))
            self._inflight[key] = task
        else:
            self.inflight_joins += 1
            logger.debug("[Scheduler] Joining in-flight request: %s", key)

        # Shielded: a cancelled caller does not abort the shared fetch
        result = await asyncio.shield(task)
        return result.model_copy()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # ---------------------------
    # Pipeline
    # ---------------------------
    async def _run(self, url: str, generation: int) -> LinkMetadata:
        try:
            async with self._semaphore:
                self.active_requests += 1
                try:
                    metadata = await self._build_metadata(url)
                finally:
                    self.active_requests -= 1
            # Skipped when the cache was cleared while this fetch ran
            if not self.result_cache.set(url, metadata, generation=generation):
                logger.debug("[Scheduler] Cache cleared during fetch, result not stored: %s", url)
            return metadata
        except Exception:
            logger.exception("[Scheduler] Unexpected failure while previewing %s", url)
            return build_fallback_metadata(url)
        finally:
            self._inflight.pop(url, None)

    async def _build_metadata(self, url: str) -> LinkMetadata:
        preview_settings = self.preview_settings

        # 1. Network
        try:
            response = await self.executor.fetch(url)
        except NetworkError as e:
            return build_fallback_metadata(url, e.as_marker())

        # 2. Status
        if response.status_code >= 400:
            logger.info("[Scheduler] HTTP %s on %s", response.status_code, url)
            return self._failure_metadata(url, HttpError(response.status_code), preview_settings)

        # 3. Content type
        content_type = self.executor.get_header(response, "content-type") or ""
        if "html" not in content_type.lower():
            logger.debug("[Scheduler] Non-HTML content (%s): %s", content_type, url)
            metadata = build_fallback_metadata(url)
            metadata.icon = await self._resolve_icon(url, [])
            return metadata

        # 4. Parse against the post-redirect URL
        final_url = self.executor.get_header(response, "x-final-url") or str(response.url) or url
        raw = response.text
        parsed = self.parser.extract(final_url, raw)

        # 5. Disguised failures degrade identically whether or not they are reported
        if self.classifier.is_disguised_failure(raw, parsed["title"], parsed["description"], url):
            logger.info("[Scheduler] Soft failure detected: %s", url)
            return self._failure_metadata(url, SoftError(), preview_settings)

        # 6. Enrichment
        metadata = LinkMetadata(
            title=parsed["title"] or fallback_title(url),
            description=parsed["description"],
            site_name=parsed["site_name"],
        )
        context = EnrichmentContext(
            original_url=url,
            parsed_url=urlsplit(url),
            metadata=metadata,
            request=self.executor.request,
            sanitize_text=sanitize_text,
            settings=preview_settings,
        )
        await self.chain.run(context)
        metadata = context.metadata
        metadata.title = sanitize_text(metadata.title) or fallback_title(url)

        # 7. Icon
        metadata.icon = await self._resolve_icon(url, parsed["icons"])
        return metadata

    def _failure_metadata(
        self, url: str, error: PreviewError, preview_settings: PreviewSettings
    ) -> LinkMetadata:
        marker = error.as_marker() if preview_settings.show_error_warnings else None
        return build_fallback_metadata(url, marker)

    async def _resolve_icon(self, url: str, candidates: List[str]) -> Optional[str]:
        try:
            return await self.icon_resolver.resolve_icon(url, candidates)
        except Exception as e:
            logger.warning("[Scheduler] Icon resolution failed for %s: %s", url, e)
            return None

    # ---------------------------
    # Configuration
    # ---------------------------
    def register_enricher(self, enricher: Enricher) -> None:
        self.chain.register(enricher)

    def update_settings(self, preview_settings: PreviewSettings) -> None:
        """Swaps the settings object. Requests already running keep the old one."""
        self.preview_settings = preview_settings

    def update_timeout(self, timeout_ms: int) -> None:
        """Applies a new request timeout and drops cached results."""
        timeout_ms = max(MIN_TIMEOUT_MS, int(round(timeout_ms)))
        self.executor.update_timeout(timeout_ms)
        self.preview_settings = self.preview_settings.model_copy(update={"request_timeout_ms": timeout_ms})
        self.result_cache.clear()
        self.inflight_joins = 0
        logger.info("[Scheduler] Request timeout set to %sms, result cache cleared", timeout_ms)

    def clear_cache(self) -> None:
        """Clears results and icon validations. Durable icon records are kept."""
        self.result_cache.clear()
        self.inflight_joins = 0
        self.icon_resolver.clear_validation_cache()

    def clear_icons(self) -> None:
        if self.icon_store is not None:
            self.icon_store.clear()
        self.icon_resolver.clear_validation_cache()

    # ---------------------------
    # Diagnostics
    # ---------------------------
    def cache_stats(self) -> Dict[str, Any]:
        """Result cache statistics. Joined in-flight fetches count as misses and in inflight_joins."""
        stats = self.result_cache.stats()
        stats["inflight_joins"] = self.inflight_joins
        return stats

    def icon_stats(self) -> Dict[str, Any]:
        if self.icon_store is None:
            return {"entries": 0, "memory_entries": 0, "oldest_timestamp": None}
        return self.icon_store.stats()

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def startup(self) -> None:
        if self.icon_store is not None:
            await self.icon_store.load()

    async def shutdown(self) -> None:
        if self.icon_store is not None:
            await self.icon_store.close()
        await self.executor.aclose()
        if self.storage is not None:
            await self.storage.close()


def build_scheduler(app_settings: AppSettings = settings) -> PreviewScheduler:
    """Wires a scheduler from configuration, including the durable icon tier."""
    preview_settings = PreviewSettings(
        request_timeout_ms=max(MIN_TIMEOUT_MS, app_settings.PREVIEW.REQUEST_TIMEOUT_MS),
        show_error_warnings=app_settings.PREVIEW.SHOW_ERROR_WARNINGS,
    )
    executor = RequestExecutor(
        timeout_ms=preview_settings.request_timeout_ms,
        user_agent=app_settings.FETCHER.USER_AGENT,
        accept=app_settings.FETCHER.ACCEPT,
        accept_language=app_settings.FETCHER.ACCEPT_LANGUAGE,
    )
    storage = build_durable_storage(app_settings)
    icon_store = IconStore(
        storage.load,
        storage.save,
        expiration_days=app_settings.ICON.EXPIRATION_DAYS,
        debounce_seconds=app_settings.ICON.SAVE_DEBOUNCE_SECONDS,
        cache_key=app_settings.ICON.CACHE_KEY,
    )
    icon_resolver = IconResolver(
        executor,
        icon_store,
        lookup_enabled=app_settings.ICON.LOOKUP_ENABLED,
        lookup_size=app_settings.ICON.LOOKUP_SIZE,
    )
    return PreviewScheduler(
        executor=executor,
        parser=DefaultHTMLParser(app_settings.FETCHER.PARSER_FEATURES),
        icon_store=icon_store,
        icon_resolver=icon_resolver,
        result_cache=ResultCache(app_settings.FETCHER.RESULT_CACHE_MAX_SIZE),
        preview_settings=preview_settings,
        max_concurrent=app_settings.FETCHER.MAX_CONCURRENT_REQUESTS,
        storage=storage,
    )
