# linkmeta/crawler/errors.py
# Responsibility: Failure taxonomy shared by the fetch pipeline.

from typing import Optional


class PreviewError(Exception):
    """Base class for every failure the pipeline knows how to classify."""

    # Prefix used when the failure is surfaced through LinkMetadata.error
    prefix = "error"

    def as_marker(self) -> str:
        return f"{self.prefix}:{self}"


class NetworkError(PreviewError):
    """DNS failure, refused connection, invalid URL or timeout."""

    prefix = "network"


class HttpError(PreviewError):
    """The server answered with a status >= 400."""

    prefix = "http"

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class SoftError(PreviewError):
    """A success response whose content describes a missing resource."""

    prefix = "http"

    def __init__(self, message: str = "Soft 404 detected"):
        super().__init__(message)


class EnricherError(PreviewError):
    """Raised (or wrapped) when an enricher fails. Never reaches callers."""

    def __init__(self, enricher_name: str, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"Enricher {enricher_name} failed{detail}")
        self.enricher_name = enricher_name
        self.cause = cause
