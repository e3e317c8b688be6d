from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Protocol, Tuple
from urllib.parse import urljoin, urlsplit

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from .cache import ResponseCache
from ..errors import ErrorPageRedirect, RedirectLimitExceeded, TransientFetchError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass
class FetchResponse:
    status: int
    body: str
    final_url: str
    from_cache: bool = False


class Transport(Protocol):
    """
    What the engine needs from HTTP. A transport may also offer
    ``cached(url) -> Optional[FetchResponse]``; the engine serves those hits
    without a politeness slot.
    """

    async def fetch(self, url: str, headers: Optional[Mapping[str, str]] = None) -> FetchResponse:
        ...

    async def close(self) -> None:
        ...


@dataclass(frozen=True)
class RedirectPolicy:
    """
    The shop redirects every failure (not found, unavailable, ...) to one
    generic error page. Redirects there end the URL; others are followed up
    to ``max_hops``.
    """

    error_markers: Tuple[str, ...] = ("globalExceptionPage.jsp",)
    max_hops: int = 10

    def is_error_page(self, url: str) -> bool:
        path = urlsplit(url).path
        return any(marker in path for marker in self.error_markers)


def create_session() -> ClientSession:
    """
    Create the shared aiohttp ClientSession.
    Cookies are dropped: with them the shop sometimes answers with another request's body.
    """
    # Note: caller is responsible for closing the session (await session.close()).
    connector = aiohttp.TCPConnector(limit=0)  # unlimited; concurrency managed by the governor
    return aiohttp.ClientSession(connector=connector, cookie_jar=aiohttp.DummyCookieJar())


class HttpTransport:
    """Fetches pages over HTTP, following redirects by hand so the policy sees every hop."""

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        headers: Optional[Mapping[str, str]] = None,
        cache_dir: Optional[str] = None,
        redirect_policy: Optional[RedirectPolicy] = None,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(headers or {})
        self.cache = ResponseCache(cache_dir) if cache_dir else None
        self.redirect_policy = redirect_policy or RedirectPolicy()
        self._session = session

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session()
        return self._session

    def cached(self, url: str) -> Optional[FetchResponse]:
        """The stored response for ``url``, without touching the network."""
        if self.cache is None:
            return None
        entry = self.cache.get(url)
        if entry is None:
            return None
        logger.debug("Cache hit for %s", url)
        return FetchResponse(
            status=int(entry["status"]),
            body=entry["body"],
            final_url=entry.get("final_url", url),
            from_cache=True,
        )

    async def fetch(self, url: str, headers: Optional[Mapping[str, str]] = None) -> FetchResponse:
        hit = self.cached(url)
        if hit is not None:
            return hit

        merged = {**self.headers, **(headers or {})}
        session = self._get_session()
        current = url
        hops = 0
        while True:
            try:
                async with session.get(
                    current,
                    headers=merged,
                    allow_redirects=False,
                    timeout=ClientTimeout(total=self.timeout),
                ) as resp:
                    status = resp.status
                    location = resp.headers.get("Location")
                    body = await resp.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransientFetchError(f"{type(exc).__name__}: {exc}", url=url) from exc

            if status not in REDIRECT_STATUSES or not location:
                break
            target = urljoin(current, location)
            if self.redirect_policy.is_error_page(target):
                raise ErrorPageRedirect(f"not following redirect to error page {target}", url=url)
            hops += 1
            if hops > self.redirect_policy.max_hops:
                raise RedirectLimitExceeded(
                    f"more than {self.redirect_policy.max_hops} redirects starting at {url}", url=url
                )
            logger.info("Redirecting %s -> %s (%d redirects)", url, target, hops)
            current = target

        if self.cache is not None and 200 <= status < 300:
            self.cache.put(url, status, body, current)
        return FetchResponse(status=status, body=body, final_url=current)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
