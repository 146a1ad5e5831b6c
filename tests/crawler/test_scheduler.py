import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from linkmeta.crawler.models import LinkMetadata, PreviewSettings
from linkmeta.enrichers.base import Enricher


class ExplodingEnricher(Enricher):
    name = "exploding"

    def matches(self, context):
        return True

    def enrich(self, context):
        raise RuntimeError("sync boom")


class AsyncExplodingEnricher(Enricher):
    name = "async_exploding"

    async def matches(self, context):
        return True

    async def enrich(self, context):
        await asyncio.sleep(0)
        raise ValueError("async boom")


class SuffixEnricher(Enricher):
    name = "suffix"

    def __init__(self, suffix: str):
        self.suffix = suffix

    def matches(self, context):
        return True

    def enrich(self, context):
        context.metadata.title = f"{context.metadata.title}{self.suffix}"


@pytest.mark.asyncio
async def test_sequential_fetches_hit_network_once(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="Cached")))

    first = await scheduler.fetch("https://example.com/a")
    second = await scheduler.fetch("https://example.com/a")

    assert len(handler.requests) == 1
    assert first == second
    assert first is not second
    assert scheduler.cache_stats()["hits"] == 1


@pytest.mark.asyncio
async def test_concurrent_duplicates_share_one_request(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="Shared")), delay=0.05)

    first, second = await asyncio.gather(
        scheduler.fetch("https://example.com/a"),
        scheduler.fetch("https://example.com/a"),
    )

    assert len(handler.requests) == 1
    assert first.model_dump() == second.model_dump()
    assert first.title == "Shared"
    assert scheduler.inflight_count == 0


@pytest.mark.asyncio
async def test_joined_fetches_are_reported_separately(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="Shared")), delay=0.05)

    await asyncio.gather(*(scheduler.fetch("https://example.com/a") for _ in range(5)))

    stats = scheduler.cache_stats()
    assert len(handler.requests) == 1
    assert stats["misses"] == 5
    assert stats["inflight_joins"] == 4

    scheduler.clear_cache()
    assert scheduler.cache_stats()["inflight_joins"] == 0


@pytest.mark.asyncio
async def test_url_normalization_is_trim_only(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="T")))

    await scheduler.fetch("  https://example.com/a  ")
    await scheduler.fetch("https://example.com/a")
    await scheduler.fetch("https://example.com/a/")
    await scheduler.fetch("https://EXAMPLE.com/a")

    assert len(handler.requests) == 3


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_ceiling(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(
        lambda r: html_response(html_page(title="T")), delay=0.02, max_concurrent=3
    )

    results = await asyncio.gather(*(scheduler.fetch(f"https://example.com/{i}") for i in range(10)))

    assert len(results) == 10
    assert len(handler.requests) == 10
    assert handler.max_active == 3


@pytest.mark.asyncio
async def test_least_recently_used_entry_is_evicted(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="T")), cache_size=2)

    for path in ("url1", "url2", "url3"):
        await scheduler.fetch(f"https://example.com/{path}")
    await scheduler.fetch("https://example.com/url1")

    assert len(handler.requests) == 4
    assert "https://example.com/url2" not in scheduler.result_cache
    assert "https://example.com/url3" in scheduler.result_cache
    assert scheduler.cache_stats()["evictions"] == 2


@pytest.mark.asyncio
async def test_fallback_title_is_bare_hostname(make_scheduler, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response("<html><body>No title here</body></html>"))

    metadata = await scheduler.fetch("https://www.example.org/some/page")

    assert metadata.title == "example.org"
    assert metadata.description is None
    assert metadata.error is None


@pytest.mark.asyncio
async def test_primary_structured_title_without_description(make_scheduler, html_page, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response(html_page(title="Example Site")))

    metadata = await scheduler.fetch("https://example.com")

    assert metadata.title == "Example Site"
    assert metadata.description is None
    assert metadata.icon == "https://www.google.com/s2/favicons?domain=example.com&sz=128"


@pytest.mark.asyncio
@pytest.mark.parametrize("show_error_warnings,expected_error", [(True, "http:Soft 404 detected"), (False, None)])
async def test_soft_failure_reporting_is_gated(make_scheduler, html_response, show_error_warnings, expected_error):
    body = "<html><head><title>404 Not Found</title><meta name='description' content='gone'></head></html>"
    scheduler, _ = make_scheduler(lambda r: html_response(body), show_error_warnings=show_error_warnings)

    metadata = await scheduler.fetch("https://example.com/missing")

    assert metadata.error == expected_error
    assert metadata.title == "example.com"
    assert metadata.description is None
    assert metadata.icon is None


@pytest.mark.asyncio
@pytest.mark.parametrize("show_error_warnings,expected_error", [(True, "http:HTTP 404"), (False, None)])
async def test_http_error_status(make_scheduler, html_response, show_error_warnings, expected_error):
    scheduler, _ = make_scheduler(lambda r: html_response("nope", status=404), show_error_warnings=show_error_warnings)

    metadata = await scheduler.fetch("https://www.example.com/missing")

    assert metadata.error == expected_error
    assert metadata.title == "example.com"


@pytest.mark.asyncio
async def test_network_errors_are_always_reported(make_scheduler):
    def responder(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    scheduler, _ = make_scheduler(responder, show_error_warnings=False)

    metadata = await scheduler.fetch("https://unreachable.example")

    assert metadata.error == "network:Name or service not known"
    assert metadata.title == "unreachable.example"


@pytest.mark.asyncio
async def test_timeout_yields_network_marker(make_scheduler, html_response):
    async def responder(request):
        await asyncio.sleep(1)
        return html_response("<title>late</title>")

    scheduler, _ = make_scheduler(responder, timeout_ms=20)

    metadata = await scheduler.fetch("https://slow.example.com")

    assert metadata.error == "network:Request timed out"


@pytest.mark.asyncio
async def test_non_html_content_uses_fallback(make_scheduler, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response("%PDF-1.7", content_type="application/pdf"))

    metadata = await scheduler.fetch("https://docs.example.com/file.pdf")

    assert metadata.title == "docs.example.com"
    assert metadata.description is None
    assert metadata.error is None
    assert metadata.icon is not None


@pytest.mark.asyncio
async def test_icons_resolve_against_redirect_target(make_scheduler, html_response):
    def responder(request):
        if request.url.path == "/start":
            return httpx.Response(302, headers={"location": "https://cdn.example.net/docs/final"})
        if request.url.path == "/docs/icon.png":
            return httpx.Response(200, headers={"content-type": "image/png"})
        return html_response('<html><head><title>Docs</title><link rel="icon" href="icon.png"></head></html>')

    scheduler, handler = make_scheduler(responder, lookup_enabled=False)

    metadata = await scheduler.fetch("https://example.com/start")

    assert metadata.title == "Docs"
    assert metadata.icon == "https://cdn.example.net/docs/icon.png"
    assert ("HEAD", "https://cdn.example.net/docs/icon.png") in [(r.method, str(r.url)) for r in handler.requests]


@pytest.mark.asyncio
async def test_inline_page_icon_is_used_without_probing(make_scheduler, html_response):
    data_url = "data:image/png;base64,iVBORw0KGgo="
    page = f'<html><head><title>Inline</title><link rel="icon" href="{data_url}"></head></html>'
    scheduler, handler = make_scheduler(lambda r: html_response(page), lookup_enabled=False)

    metadata = await scheduler.fetch("https://example.com/inline")

    assert metadata.icon == data_url
    assert [r.method for r in handler.requests] == ["GET"]


@pytest.mark.asyncio
async def test_failing_enrichers_never_break_fetch(make_scheduler, html_page, html_response):
    scheduler, _ = make_scheduler(
        lambda r: html_response(html_page(title="Base")),
        enrichers=[ExplodingEnricher(), SuffixEnricher("!"), AsyncExplodingEnricher()],
    )

    metadata = await scheduler.fetch("https://example.com")

    assert metadata.title == "Base!"


@pytest.mark.asyncio
async def test_unexpected_errors_degrade_to_fallback(make_scheduler, html_page, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response(html_page(title="x")))
    scheduler.parser.extract = MagicMock(side_effect=RuntimeError("parser bug"))

    metadata = await scheduler.fetch("https://example.com/broken")

    assert metadata == LinkMetadata(title="example.com")
    assert scheduler.inflight_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "   ", "not a url", "http://", "ftp://example.com/file"])
async def test_malformed_urls_still_resolve(make_scheduler, url):
    def responder(request):
        if request.url.scheme not in ("http", "https") or not request.url.host:
            raise httpx.UnsupportedProtocol("Request URL is missing an 'http://' or 'https://' protocol.")
        return httpx.Response(404)

    scheduler, _ = make_scheduler(responder)

    metadata = await scheduler.fetch(url)

    assert isinstance(metadata, LinkMetadata)
    assert metadata.title


@pytest.mark.asyncio
async def test_cached_instances_are_never_handed_out(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="Original")))

    first = await scheduler.fetch("https://example.com")
    first.title = "Mutated by caller"
    second = await scheduler.fetch("https://example.com")

    assert second.title == "Original"
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_update_timeout_clears_results(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="T")))

    await scheduler.fetch("https://example.com")
    scheduler.update_timeout(3000)
    await scheduler.fetch("https://example.com")

    assert len(handler.requests) == 2
    assert scheduler.executor.timeout_ms == 3000
    assert scheduler.preview_settings.request_timeout_ms == 3000


@pytest.mark.asyncio
async def test_update_timeout_enforces_minimum(make_scheduler, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response(""))

    scheduler.update_timeout(10)

    assert scheduler.executor.timeout_ms == 500


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="T")))

    await scheduler.fetch("https://example.com")
    scheduler.clear_cache()
    await scheduler.fetch("https://example.com")

    assert len(handler.requests) == 2
    assert scheduler.cache_stats()["size"] == 1


@pytest.mark.asyncio
async def test_registered_enrichers_apply_to_later_fetches(make_scheduler, html_page, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response(html_page(title="Title")))

    before = await scheduler.fetch("https://example.com/1")
    scheduler.register_enricher(SuffixEnricher(" [1]"))
    scheduler.register_enricher(SuffixEnricher(" [2]"))
    after = await scheduler.fetch("https://example.com/2")

    assert before.title == "Title"
    assert after.title == "Title [1] [2]"


@pytest.mark.asyncio
async def test_update_settings_changes_error_reporting(make_scheduler, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response("", status=500))

    scheduler.update_settings(PreviewSettings(request_timeout_ms=7000, show_error_warnings=False))
    metadata = await scheduler.fetch("https://example.com")

    assert metadata.error is None


@pytest.mark.asyncio
async def test_shutdown_persists_icons(make_scheduler, html_page, html_response):
    scheduler, _ = make_scheduler(lambda r: html_response(html_page(title="T")))
    await scheduler.startup()

    await scheduler.fetch("https://example.com/page")
    await scheduler.shutdown()

    stored = await scheduler.storage.load()
    assert stored["icon-cache"]["https://example.com"]["url"].startswith("https://www.google.com/s2/favicons")
    assert scheduler.icon_stats()["entries"] == 1


@pytest.mark.asyncio
async def test_timeout_change_discards_results_already_in_flight(make_scheduler, html_page, html_response):
    scheduler, handler = make_scheduler(lambda r: html_response(html_page(title="Old")), delay=0.1)

    pending = asyncio.ensure_future(scheduler.fetch("https://example.com/slow"))
    await asyncio.sleep(0.02)
    scheduler.update_timeout(3000)
    result = await pending

    # The caller still gets its result, but it is not cached
    assert result.title == "Old"
    assert scheduler.cache_stats()["size"] == 0

    await scheduler.fetch("https://example.com/slow")
    assert len(handler.requests) == 2
    assert scheduler.cache_stats()["size"] == 1
