# linkmeta/enrichers/base.py
# Responsibility: Contract shared by every domain-specific metadata enricher.

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Union
from urllib.parse import SplitResult

import httpx

from linkmeta.crawler.models import LinkMetadata, PreviewSettings

RequestCallback = Callable[..., Awaitable[httpx.Response]]
SanitizeCallback = Callable[[Optional[str]], Optional[str]]


@dataclass
class EnrichmentContext:
    """
    Mutable state shared by all enrichers during one fetch.
    Enrichers only write to `metadata`; everything else is read-only.
    """

    original_url: str
    parsed_url: SplitResult
    metadata: LinkMetadata
    request: RequestCallback
    sanitize_text: SanitizeCallback
    settings: PreviewSettings

    @property
    def hostname(self) -> str:
        return (self.parsed_url.hostname or "").lower()

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        return await self.request(url, method="GET", headers=headers)


class Enricher(ABC):
    """
    A {matches, enrich} pair. Implementations hold no per-request state.
    Either method may be a coroutine.
    """

    name: str = "enricher"

    @abstractmethod
    def matches(self, context: EnrichmentContext) -> Union[bool, Awaitable[bool]]:
        pass

    @abstractmethod
    def enrich(self, context: EnrichmentContext) -> Union[None, Awaitable[None]]:
        pass


def normalize_title(value: Optional[str]) -> str:
    return " ".join((value or "").split()).lower()
