from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List
from abc import ABC, abstractmethod

from ..adapters.base import PartialProduct


@dataclass
class CrawlReport:
    visited_count: int = 0
    emitted_count: int = 0
    skipped: Dict[str, str] = field(default_factory=dict)  # url -> reason
    correlation_misses: int = 0
    malformed_follow_ups: int = 0
    abandoned_follow_ups: int = 0
    # Product URLs whose body was not a product page.
    unparsed_products: int = 0
    # Partials still waiting for a follow-up when the crawl finished.
    stranded: List[PartialProduct] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "visited": self.visited_count,
            "emitted": self.emitted_count,
            "skipped": len(self.skipped),
            "correlation_misses": self.correlation_misses,
            "malformed_follow_ups": self.malformed_follow_ups,
            "abandoned_follow_ups": self.abandoned_follow_ups,
            "unparsed_products": self.unparsed_products,
            "stranded": len(self.stranded),
        }


class CrawlEngine(ABC):
    """
    Abstract engine interface. Implementations own the crawl lifecycle.
    """
    @abstractmethod
    async def crawl(self) -> CrawlReport:  # pragma: no cover - interface
        ...
