from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional, Set
from urllib.parse import urlsplit

from .base import PageKind, PageResult, SiteAdapter
from .ebucks import EbucksAdapter
from ..utils.parsing import query_param

logger = logging.getLogger(__name__)

# Identifiers a URL of each kind must carry to be worth fetching.
_REQUIRED_PARAMS: Dict[PageKind, tuple] = {
    PageKind.HOME: (),
    PageKind.CATEGORY: ("catId",),
    PageKind.PRODUCT: ("prodId", "catId"),
    PageKind.FOLLOW_UP: ("prodId", "catId"),
}


class PageClassifier:
    """
    Matches URLs against the adapter's ordered page shapes and dispatches
    fetched bodies to the handler for that shape.

    Anything that matches no shape is outside crawl scope (external links,
    assets, account pages) and is dropped without complaint.
    """

    def __init__(self, adapter: SiteAdapter | None = None, allowed_domains: Optional[Iterable[str]] = None) -> None:
        self.adapter: SiteAdapter = adapter or EbucksAdapter()
        domains = list(allowed_domains) if allowed_domains is not None else list(self.adapter.domains)
        # An empty list lifts the domain restriction (used against local test servers).
        self.allowed_domains: Set[str] = {d.lower() for d in domains}
        self._handlers: Dict[PageKind, Callable[[str, str], Optional[PageResult]]] = {
            PageKind.HOME: self.adapter.parse_listing,
            PageKind.CATEGORY: self.adapter.parse_listing,
            PageKind.PRODUCT: self.adapter.parse_product,
            PageKind.FOLLOW_UP: self.adapter.parse_discount,
        }

    def classify(self, url: str) -> Optional[PageKind]:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            return None
        if self.allowed_domains and parts.netloc.lower() not in self.allowed_domains:
            return None
        for kind, pattern in self.adapter.shapes:
            if pattern.search(parts.path):
                if all(query_param(url, name) for name in _REQUIRED_PARAMS[kind]):
                    return kind
                return None
        return None

    def accepts(self, url: str) -> bool:
        return self.classify(url) is not None

    def dispatch(self, url: str, body: str) -> Optional[PageResult]:
        kind = self.classify(url)
        if kind is None:
            logger.debug("Dropping out-of-scope page %s", url)
            return None
        return self._handlers[kind](url, body)

    def follow_up_url(self, product_url: str) -> str:
        return self.adapter.follow_up_url(product_url)
