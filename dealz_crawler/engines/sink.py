from __future__ import annotations

import logging
import threading
from typing import Callable, Set

from ..adapters.base import CorrelationKey, ResolvedProduct

logger = logging.getLogger(__name__)

ProductHandler = Callable[[ResolvedProduct], None]


class ResultSink:
    """
    Hands each resolved product to the caller's handler, once per
    (category id, product id), one product at a time.
    """

    def __init__(self, handler: ProductHandler) -> None:
        self._handler = handler
        self._lock = threading.Lock()
        self._seen: Set[CorrelationKey] = set()

    def emit(self, product: ResolvedProduct) -> bool:
        with self._lock:
            if product.key in self._seen:
                logger.warning("Duplicate product %s/%s not emitted again", product.category_id, product.product_id)
                return False
            self._handler(product)
            self._seen.add(product.key)
        return True

    @property
    def emitted(self) -> int:
        with self._lock:
            return len(self._seen)
