from __future__ import annotations

import re
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

#: Query parameters that identify a catalog page. Everything else is session cruft.
IDENTITY_PARAMS: Tuple[str, ...] = ("prodId", "catId")

_RANDS_RE = re.compile(r"R\s*([\d\s]+(?:\.\d+)?)")
_WHITESPACE_RE = re.compile(r"\s")


def canonicalize_url(url: str) -> str:
    """
    Normalize a catalog URL so equivalent pages share one dedup key.

    Drops the fragment and path parameters (``;jsessionid=...``), lowercases
    scheme and host, and keeps only the identifying query parameters in a
    fixed order. Returns "" for blank or host-less input.

    e.g. ``/web/shop/categorySelected.do;jsessionid=E1F?catId=300&extraInfo=x``
    becomes ``/web/shop/categorySelected.do?catId=300``.
    """
    if not url or not url.strip():
        return ""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""

    path = parts.path.split(";", 1)[0] or "/"
    params = {}
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name in IDENTITY_PARAMS and value and name not in params:
            params[name] = value
    query = urlencode([(name, params[name]) for name in IDENTITY_PARAMS if name in params])
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ""))


def query_param(url: str, name: str) -> str:
    """First value of a query parameter, "" when absent."""
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == name:
            return value
    return ""


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    """
    Absolute targets of every anchor on the page, in document order.
    Canonicalization is left to the frontier so raw forms survive for diagnostics.
    """
    out: List[str] = []
    for a in soup.select("a[href]"):
        href = (a.get("href") or "").strip()
        if not href or href.startswith(("javascript:", "mailto:", "#")):
            continue
        out.append(urljoin(base_url, href))
    return out


def text_or_none(node) -> Optional[str]:
    if not node:
        return None
    text = node.get_text(strip=True)
    return text or None


def parse_rands(text: str) -> float:
    """
    Parse a display price such as ``R1 299.00`` (spaces as thousands separators).
    Raises ValueError when the text holds no rand amount.
    """
    match = _RANDS_RE.search(text or "")
    if not match:
        raise ValueError(f"not a rand amount: {text!r}")
    return float(_WHITESPACE_RE.sub("", match.group(1)))
