import asyncio

import httpx
import pytest

from linkmeta.crawler.errors import NetworkError
from linkmeta.crawler.fetcher import TIMEOUT_MESSAGE, RequestExecutor


def make_executor(handler, timeout_ms: int = 7000) -> RequestExecutor:
    return RequestExecutor(timeout_ms=timeout_ms, transport=httpx.MockTransport(handler))


def test_get_header_is_case_insensitive():
    response = httpx.Response(200, headers={"Content-Type": "text/html", "X-Final-URL": "https://a.example"})

    assert RequestExecutor.get_header(response, "content-type") == "text/html"
    assert RequestExecutor.get_header(response, "x-final-url") == "https://a.example"
    assert RequestExecutor.get_header(response, "etag") is None


def test_build_headers_are_stable():
    executor = RequestExecutor()

    headers = executor.build_headers()

    assert set(headers) == {"User-Agent", "Accept", "Accept-Language"}
    assert headers == executor.build_headers()


@pytest.mark.asyncio
async def test_fetch_sends_standard_headers_and_follows_redirects():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/old":
            return httpx.Response(301, headers={"location": "https://example.com/new"})
        return httpx.Response(200, text="ok")

    executor = make_executor(handler)
    response = await executor.fetch("https://example.com/old")
    await executor.aclose()

    assert response.status_code == 200
    assert str(response.url) == "https://example.com/new"
    assert seen[0].headers["accept-language"] == "en-US,en;q=0.9"
    assert "Mozilla" in seen[0].headers["user-agent"]


@pytest.mark.asyncio
async def test_request_merges_extra_headers_and_method():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    executor = make_executor(handler)
    await executor.request("https://example.com/favicon.ico", method="HEAD", headers={"Accept": "image/*"})
    await executor.aclose()

    assert seen[0].method == "HEAD"
    assert seen[0].headers["accept"] == "image/*"


@pytest.mark.asyncio
async def test_timeout_becomes_network_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200)

    executor = make_executor(handler, timeout_ms=20)

    with pytest.raises(NetworkError) as exc_info:
        await executor.fetch("https://slow.example.com")
    await executor.aclose()

    assert str(exc_info.value) == TIMEOUT_MESSAGE
    assert exc_info.value.as_marker() == "network:Request timed out"


@pytest.mark.asyncio
async def test_transport_failures_become_network_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    executor = make_executor(handler)

    with pytest.raises(NetworkError) as exc_info:
        await executor.fetch("https://down.example.com")
    await executor.aclose()

    assert exc_info.value.as_marker() == "network:Connection refused"


@pytest.mark.asyncio
async def test_update_timeout_applies_to_next_request():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return httpx.Response(200)

    executor = make_executor(handler, timeout_ms=10)
    with pytest.raises(NetworkError):
        await executor.fetch("https://example.com")

    executor.update_timeout(2000)
    response = await executor.fetch("https://example.com")
    await executor.aclose()

    assert response.status_code == 200
