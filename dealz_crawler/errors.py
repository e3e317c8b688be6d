"""
Error taxonomy for the crawl engine.

Only ``TransientFetchError`` is retried. ``SkipPage`` subclasses discard the
frontier entry and the crawl carries on. ``FatalCrawlError`` subclasses stop
every worker and surface from ``CrawlEngine.crawl()``.
"""
from __future__ import annotations

from typing import Optional


class CrawlError(Exception):
    """Base class for everything the crawler raises on purpose."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class TransientFetchError(CrawlError):
    """Network failure, timeout, 429 or 5xx. Worth another try."""

    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message, url=url)
        self.status = status


class SkipPage(CrawlError):
    """The page is permanently unusable for this crawl; log it and move on."""

    reason = "skipped"


class ErrorPageRedirect(SkipPage):
    """The site redirected to its generic failure page. Retrying never helps."""

    reason = "error-page-redirect"


class RedirectLimitExceeded(SkipPage):
    reason = "too-many-redirects"


class ClientError(SkipPage):
    """A 4xx response: the page is genuinely absent."""

    reason = "client-error"

    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message, url=url)
        self.status = status


class CorrelationMiss(SkipPage):
    """A follow-up response arrived with no stored partial product."""

    reason = "correlation-miss"


class MalformedContent(CrawlError):
    """A follow-up payload could not be decoded."""


class FatalCrawlError(CrawlError):
    """Aborts the whole crawl."""


class RetryBudgetExceeded(FatalCrawlError):
    def __init__(self, message: str, *, url: Optional[str] = None, attempts: int = 0) -> None:
        super().__init__(message, url=url)
        self.attempts = attempts


class IntegrityMismatch(FatalCrawlError):
    """Identifiers in a product page disagree with the identifiers in its URL."""


class ExportFailed(FatalCrawlError):
    """An exporter could not write a product record."""
