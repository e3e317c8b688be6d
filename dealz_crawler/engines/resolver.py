from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from .frontier import EnqueueResult, Frontier
from .sink import ResultSink
from ..adapters.base import CorrelationKey, DiscountPage, PartialProduct, ProductPage
from ..errors import CorrelationMiss, IntegrityMismatch
from ..utils.parsing import canonicalize_url

logger = logging.getLogger(__name__)


class ProductState(str, Enum):
    DISCOVERED = "discovered"
    STATIC_EXTRACTED = "static-extracted"
    AWAITING_FOLLOW_UP = "awaiting-follow-up"
    RESOLVED = "resolved"
    FAILED = "failed"


class CorrelationStore:
    """Partial products waiting for their discount follow-up, keyed by (category id, product id)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._partials: Dict[CorrelationKey, PartialProduct] = {}

    def put(self, partial: PartialProduct) -> None:
        with self._lock:
            if partial.key in self._partials:
                logger.warning("Replacing stored partial product for %s", partial.key)
            self._partials[partial.key] = partial

    def pop(self, key: CorrelationKey) -> Optional[PartialProduct]:
        with self._lock:
            return self._partials.pop(key, None)

    def pending(self) -> List[PartialProduct]:
        with self._lock:
            return list(self._partials.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._partials)


class ProductResolver:
    """
    Turns product detail pages (and, for discounted products, their follow-up
    discount documents) into exactly one ResolvedProduct each.

    ``Discovered -> StaticExtracted -> Resolved`` when the page has no
    discount table, otherwise ``-> AwaitingFollowUp -> Resolved | Failed``.
    """

    def __init__(
        self,
        sink: ResultSink,
        frontier: Frontier,
        follow_up_url: Callable[[str], str],
        store: CorrelationStore | None = None,
    ) -> None:
        self.sink = sink
        self.frontier = frontier
        self.follow_up_url = follow_up_url
        self.store = store or CorrelationStore()
        self._lock = threading.Lock()
        self._states: Dict[CorrelationKey, ProductState] = {}
        self._follow_ups: Dict[str, CorrelationKey] = {}
        self.correlation_misses = 0
        self.malformed_follow_ups = 0
        self.abandoned_follow_ups = 0
        self.unparsed_products = 0

    # ---- State bookkeeping ----

    def state(self, key: CorrelationKey) -> Optional[ProductState]:
        with self._lock:
            return self._states.get(key)

    def discover(self, key: CorrelationKey) -> None:
        with self._lock:
            self._states.setdefault(key, ProductState.DISCOVERED)

    def _set_state(self, key: CorrelationKey, state: ProductState) -> None:
        with self._lock:
            self._states[key] = state

    # ---- Transitions ----

    def on_static(self, page: ProductPage) -> ProductState:
        partial = page.partial
        if partial.key != page.hidden_key:
            # The body does not belong to the URL we asked for.
            raise IntegrityMismatch(
                f"identifier mismatch on {partial.url}: url={tuple(partial.key)} page={tuple(page.hidden_key)}",
                url=partial.url,
            )
        self._set_state(partial.key, ProductState.STATIC_EXTRACTED)

        if not page.has_discount:
            return self._finalize(partial)

        follow_up = canonicalize_url(self.follow_up_url(partial.url))
        # Store first: the follow-up must never find an empty slot.
        self.store.put(partial)
        with self._lock:
            self._follow_ups[follow_up] = partial.key
            self._states[partial.key] = ProductState.AWAITING_FOLLOW_UP
        result = self.frontier.enqueue(follow_up)
        if result is EnqueueResult.ALREADY_VISITED and self.frontier.is_pending(follow_up):
            # Linked from a listing and still queued; it will find the stored partial.
            logger.debug("Follow-up %s already queued for %s", follow_up, partial.key)
        elif not result.queued:
            logger.warning("Follow-up %s not queued (%s); using static fields", follow_up, result.value)
            stored = self.store.pop(partial.key)
            if stored is not None:
                return self._finalize(stored)
        return ProductState.AWAITING_FOLLOW_UP

    def on_follow_up(self, page: DiscountPage) -> ProductState:
        partial = self.store.pop(page.key)
        if partial is None:
            with self._lock:
                self.correlation_misses += 1
                if self._states.get(page.key) is not ProductState.RESOLVED:
                    self._states[page.key] = ProductState.FAILED
            raise CorrelationMiss(f"no partial product stored for {tuple(page.key)}", url=page.url)

        if page.malformed:
            with self._lock:
                self.malformed_follow_ups += 1
        elif page.tier is None:
            # The discount-table probe on the static page can be a false positive.
            logger.info("No discount tiers for %s; keeping static prices", partial.url)
        else:
            partial.apply_tier(page.tier)
        return self._finalize(partial)

    def abandon_follow_up(self, url: str) -> bool:
        """
        The follow-up fetch for ``url`` was skipped: emit the stored partial
        from its static fields rather than losing the product.
        """
        with self._lock:
            key = self._follow_ups.get(canonicalize_url(url))
        if key is None:
            return False
        partial = self.store.pop(key)
        if partial is None:
            return False
        with self._lock:
            self.abandoned_follow_ups += 1
        logger.warning("Follow-up for %s failed; emitting static fields only", partial.url)
        self._finalize(partial)
        return True

    def reject_product_page(self, key: CorrelationKey, url: str) -> None:
        """A product URL served a body that is not a product page."""
        with self._lock:
            self.unparsed_products += 1
            if self._states.get(key) is not ProductState.RESOLVED:
                self._states[key] = ProductState.FAILED
        logger.warning("No product form on %s; product %s/%s lost", url, key.category_id, key.product_id)

    def pending(self) -> List[PartialProduct]:
        return self.store.pending()

    def _finalize(self, partial: PartialProduct) -> ProductState:
        self.sink.emit(partial.finalize())
        self._set_state(partial.key, ProductState.RESOLVED)
        return ProductState.RESOLVED
