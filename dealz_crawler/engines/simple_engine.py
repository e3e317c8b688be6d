from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from .base import CrawlEngine, CrawlReport
from .frontier import Frontier, FrontierEntry
from .politeness import PolitenessGovernor
from .resolver import ProductResolver
from .sink import ProductHandler, ResultSink
from ..adapters.base import CorrelationKey, DiscountPage, ListingPage, PageKind, ProductPage, ResolvedProduct
from ..adapters.registry import PageClassifier
from ..config import CrawlConfig
from ..errors import ClientError, SkipPage, TransientFetchError
from ..utils.diagnostics import DiagnosticLog
from ..utils.http import FetchResponse, HttpTransport, RedirectPolicy, Transport
from ..utils.parsing import canonicalize_url, query_param

logger = logging.getLogger(__name__)


def _product_key(url: str) -> CorrelationKey:
    return CorrelationKey(query_param(url, "catId"), query_param(url, "prodId"))


def raise_for_status(response: FetchResponse, url: str) -> None:
    """429 and 5xx are worth retrying; any other 4xx means the page is gone."""
    status = response.status
    if status == 429 or status >= 500:
        raise TransientFetchError(f"HTTP {status}", url=url, status=status)
    if 400 <= status < 500:
        raise ClientError(f"HTTP {status}", url=url, status=status)


class SimpleCrawlEngine(CrawlEngine):
    """
    A fixed pool of asyncio workers sharing one Frontier.

    - Engine owns HTTP, queueing, retries and the completion barrier.
    - The classifier and its adapter own page parsing.
    - The resolver owns product assembly; the sink owns delivery.

    The crawl is complete when the frontier is empty and no entry is in
    flight. A FatalCrawlError from any worker cancels the rest and is
    re-raised from ``crawl()``.
    """
    def __init__(
        self,
        config: CrawlConfig,
        on_product: ProductHandler,
        *,
        classifier: PageClassifier | None = None,
        transport: Transport | None = None,
        diagnostics: DiagnosticLog | None = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.config = config
        self.classifier = classifier or PageClassifier(allowed_domains=config.allowed_domains)
        self.frontier = Frontier(self.classifier.accepts, order=config.frontier_order)
        self.governor = PolitenessGovernor(
            config.threads,
            delay=config.delay,
            jitter=config.jitter,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
            backoff_cap=config.backoff_cap,
            sleep=sleep,
        )
        self.diagnostics = diagnostics or DiagnosticLog(config.diagnostics_dir)
        self.sink = ResultSink(self._deliver)
        self.resolver = ProductResolver(self.sink, self.frontier, self.classifier.follow_up_url)
        self._on_product = on_product
        self._transport = transport
        self._skipped: Dict[str, str] = {}
        self._visited = 0
        self._in_flight = 0
        self._idle: Optional[asyncio.Condition] = None

    def _make_transport(self) -> Transport:
        cfg = self.config
        return HttpTransport(
            timeout=cfg.request_timeout,
            headers=cfg.request_headers(),
            cache_dir=cfg.cache_dir,
            redirect_policy=RedirectPolicy(max_hops=cfg.max_redirects),
        )

    async def crawl(self) -> CrawlReport:
        cfg = self.config
        seeded = self.frontier.enqueue(cfg.start_url)
        if not seeded.queued:
            raise ValueError(f"start URL {cfg.start_url!r} was not accepted ({seeded.value})")

        transport = self._transport or self._make_transport()
        self._idle = asyncio.Condition()
        workers = [asyncio.create_task(self._worker(i, transport)) for i in range(cfg.threads)]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        finally:
            if self._transport is None:
                await transport.close()
            self.diagnostics.close()

        return self._report()

    # ---- Worker loop ----

    async def _worker(self, worker_id: int, transport: Transport) -> None:
        assert self._idle is not None
        while True:
            async with self._idle:
                entry = self.frontier.dequeue()
                while entry is None:
                    if self._in_flight == 0:
                        # Nothing queued and nobody left who could queue more.
                        self._idle.notify_all()
                        logger.debug("Worker %d done", worker_id)
                        return
                    await self._idle.wait()
                    entry = self.frontier.dequeue()
                self._in_flight += 1
            try:
                await self._process(entry, transport)
            finally:
                async with self._idle:
                    self._in_flight -= 1
                    self._idle.notify_all()

    async def _process(self, entry: FrontierEntry, transport: Transport) -> None:
        response = await self._fetch(entry, transport)
        if response is None:
            return
        self._visited += 1
        self.diagnostics.visited(entry.url)

        try:
            result = self.classifier.dispatch(entry.url, response.body)
        except Exception as exc:
            logger.error("Extractor failed on %s: %r", entry.url, exc, exc_info=True)
            self._skip(entry.url, "extractor-error")
            return

        if result is None and self.classifier.classify(entry.url) is PageKind.PRODUCT:
            self._skip(entry.url, "not-a-product-page")
            self.resolver.reject_product_page(_product_key(entry.url), entry.url)
            return

        try:
            if isinstance(result, ListingPage):
                self._handle_listing(entry, result)
            elif isinstance(result, ProductPage):
                logger.info("Found product: url=%s name=%r", entry.url, result.partial.name)
                self.resolver.on_static(result)
            elif isinstance(result, DiscountPage):
                self.resolver.on_follow_up(result)
        except SkipPage as exc:
            self._skip(entry.url, exc.reason, exc)

    async def _fetch(self, entry: FrontierEntry, transport: Transport) -> Optional[FetchResponse]:
        lookup = getattr(transport, "cached", None)
        while True:
            try:
                # Cache hits never take a politeness slot.
                response = lookup(entry.url) if lookup is not None else None
                if response is None:
                    async with self.governor.slot(entry.url):
                        logger.debug("Visiting %s", entry.url)
                        response = await transport.fetch(entry.url)
                raise_for_status(response, entry.url)
                return response
            except TransientFetchError as exc:
                entry.attempts += 1
                # Raises RetryBudgetExceeded once the URL has failed too often.
                delay = self.governor.record_failure(entry.url)
                logger.warning("Request %s failed (attempt %d), retrying after %.0fs: %s",
                               entry.url, entry.attempts, delay, exc)
                await self.governor.backoff(delay)
            except SkipPage as exc:
                self._skip(entry.url, exc.reason, exc)
                if self.classifier.classify(entry.url) is PageKind.FOLLOW_UP:
                    self.resolver.abandon_follow_up(entry.url)
                return None

    # ---- Handlers ----

    def _handle_listing(self, entry: FrontierEntry, page: ListingPage) -> None:
        queued = 0
        for link in page.links:
            if not self.frontier.enqueue(link).queued:
                continue
            queued += 1
            canonical = canonicalize_url(link)
            self.diagnostics.discovered(canonical, entry.url)
            if self.classifier.classify(canonical) is PageKind.PRODUCT:
                self.resolver.discover(_product_key(canonical))
        logger.debug("%s: %d links, %d new", entry.url, len(page.links), queued)

    def _deliver(self, product: ResolvedProduct) -> None:
        self.diagnostics.resolved(product)
        self._on_product(product)

    def _skip(self, url: str, reason: str, exc: Exception | None = None) -> None:
        logger.warning("Skipping %s (%s)%s", url, reason, f": {exc}" if exc else "")
        self._skipped[url] = reason
        self.diagnostics.skipped(url, reason)

    def _report(self) -> CrawlReport:
        stranded = self.resolver.pending()
        if stranded:
            logger.warning("%d products never received their follow-up", len(stranded))
        if self.resolver.unparsed_products:
            logger.warning("%d product URLs did not serve a product page", self.resolver.unparsed_products)
        if self.resolver.correlation_misses:
            logger.warning("%d follow-up responses had no partial product", self.resolver.correlation_misses)
        return CrawlReport(
            visited_count=self._visited,
            emitted_count=self.sink.emitted,
            skipped=dict(self._skipped),
            correlation_misses=self.resolver.correlation_misses,
            malformed_follow_ups=self.resolver.malformed_follow_ups,
            abandoned_follow_ups=self.resolver.abandoned_follow_ups,
            unparsed_products=self.resolver.unparsed_products,
            stranded=stranded,
        )
