# linkmeta/crawler/models.py
# Responsibility: Data shapes exchanged between the pipeline stages and callers.

from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

UNTITLED = "Untitled"


class LinkMetadata(BaseModel):
    """
    Displayable metadata for one URL.
    Instances placed in the result cache are never handed out directly;
    callers always receive a copy.
    """

    title: str
    description: Optional[str] = None
    icon: Optional[str] = None
    site_name: Optional[str] = None
    error: Optional[str] = None


class PreviewSettings(BaseModel):
    """Read-only settings visible to enrichers and the classifier."""

    model_config = ConfigDict(frozen=True)

    request_timeout_ms: int = Field(7000, ge=500)
    show_error_warnings: bool = True


def fallback_title(url: str) -> str:
    """
    Title used when a page exposes nothing better:
    hostname without a leading "www.", else the raw URL.
    """
    raw = (url or "").strip()
    try:
        hostname = urlsplit(raw).hostname or ""
    except ValueError:
        hostname = ""
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname or raw or UNTITLED


def build_fallback_metadata(url: str, error: Optional[str] = None) -> LinkMetadata:
    return LinkMetadata(title=fallback_title(url), error=error)
