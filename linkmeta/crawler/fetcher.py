# linkmeta/crawler/fetcher.py
# Responsibility: Issues single outbound HTTP requests with a hard timeout.

import asyncio
import logging
from typing import Dict, Optional

import httpx

from linkmeta.config.settings import settings
from linkmeta.crawler.errors import NetworkError

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timed out"


class RequestExecutor:
    """
    Component responsible for network IO.
    One attempt per call: retries are left to the caller.
    """

    def __init__(
        self,
        timeout_ms: int = settings.PREVIEW.REQUEST_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: str = settings.FETCHER.USER_AGENT,
        accept: str = settings.FETCHER.ACCEPT,
        accept_language: str = settings.FETCHER.ACCEPT_LANGUAGE,
    ):
        """
        Args:
            timeout_ms (int): Deadline for a whole request. Values <= 0 disable it.
            transport: Optional httpx transport, used to stub the network in tests.
        """
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.accept = accept
        self.accept_language = accept_language
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ---------------------------
    # Client lifecycle
    # ---------------------------
    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=None,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def update_timeout(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms

    # ---------------------------
    # Headers
    # ---------------------------
    def build_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
        }

    @staticmethod
    def get_header(response: httpx.Response, name: str) -> Optional[str]:
        """Case-insensitive header lookup. Returns None when absent."""
        return response.headers.get(name)

    # ---------------------------
    # Requests
    # ---------------------------
    async def fetch(self, url: str) -> httpx.Response:
        return await self.request(url)

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Performs one request, racing it against the configured deadline.

        Raises:
            NetworkError: On transport failures, invalid URLs and timeouts.
        """
        merged = self.build_headers()
        if headers:
            merged.update(headers)

        client = self._get_client()
        call = client.request(method, url, headers=merged)
        timeout_s = self.timeout_ms / 1000 if self.timeout_ms and self.timeout_ms > 0 else None

        try:
            if timeout_s is None:
                return await call
            return await asyncio.wait_for(call, timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("[Fetcher] Timed out after %sms: %s", self.timeout_ms, url)
            raise NetworkError(TIMEOUT_MESSAGE) from None
        except httpx.TimeoutException as e:
            logger.warning("[Fetcher] Transport timeout on %s: %s", url, e)
            raise NetworkError(TIMEOUT_MESSAGE) from e
        except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
            message = str(e) or e.__class__.__name__
            logger.warning("[Fetcher] Network error on %s: %s", url, message)
            raise NetworkError(message) from e
