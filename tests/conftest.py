import asyncio
import inspect
from typing import Callable, List, Optional

import httpx
import pytest

from linkmeta.crawler.fetcher import RequestExecutor
from linkmeta.crawler.models import PreviewSettings
from linkmeta.crawler.scheduler import PreviewScheduler
from linkmeta.enrichers.chain import EnrichmentChain
from linkmeta.services.durable import MemoryStorage
from linkmeta.services.icon_resolver import IconResolver
from linkmeta.services.icon_store import IconStore
from linkmeta.services.result_cache import ResultCache


def build_html(title: Optional[str] = None, description: Optional[str] = None, head: str = "", body: str = "") -> str:
    parts = []
    if title is not None:
        parts.append(f'<meta property="og:title" content="{title}">')
    if description is not None:
        parts.append(f'<meta name="description" content="{description}">')
    return f"<html><head>{''.join(parts)}{head}</head><body>{body}</body></html>"


class RecordingHandler:
    """MockTransport handler that records requests and peak concurrency."""

    def __init__(self, responder: Callable, delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.requests: List[httpx.Request] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.responder(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self.active -= 1

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def html_page():
    return build_html


@pytest.fixture
def html_response():
    def _make(body: str, status: int = 200, content_type: str = "text/html; charset=utf-8", headers=None):
        merged = {"content-type": content_type}
        merged.update(headers or {})
        return httpx.Response(status, headers=merged, text=body)

    return _make


@pytest.fixture
def make_scheduler():
    """
    Builds a PreviewScheduler whose network is a MockTransport.
    Returns (scheduler, handler).
    """

    def _make(
        responder: Callable,
        delay: float = 0.0,
        show_error_warnings: bool = True,
        max_concurrent: int = 10,
        cache_size: int = 1000,
        enrichers=(),
        lookup_enabled: bool = True,
        timeout_ms: int = 7000,
    ):
        handler = RecordingHandler(responder, delay)
        executor = RequestExecutor(timeout_ms=timeout_ms, transport=httpx.MockTransport(handler))
        storage = MemoryStorage()
        store = IconStore(storage.load, storage.save, debounce_seconds=0.01)
        scheduler = PreviewScheduler(
            executor=executor,
            chain=EnrichmentChain(list(enrichers)),
            icon_store=store,
            icon_resolver=IconResolver(executor, store, lookup_enabled=lookup_enabled),
            result_cache=ResultCache(cache_size),
            preview_settings=PreviewSettings(
                request_timeout_ms=max(500, timeout_ms),
                show_error_warnings=show_error_warnings,
            ),
            max_concurrent=max_concurrent,
            storage=storage,
        )
        return scheduler, handler

    return _make
