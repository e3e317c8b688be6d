from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from .base import (
    CorrelationKey,
    DiscountPage,
    DiscountTier,
    ListingPage,
    NO_PRICE,
    PageKind,
    PartialProduct,
    ProductPage,
)
from ..errors import MalformedContent
from ..utils.parsing import extract_links, make_soup, parse_rands, query_param, text_or_none

logger = logging.getLogger(__name__)

SHOP_HOME_URL = "https://www.ebucks.com/web/shop/shopHome.do"

_PRODUCT_PATH_RE = re.compile(r"productSelected\.do$")


class EbucksAdapter:
    """
    Reads the eBucks shop.

    The site splits a product over two responses: the static detail page has
    the name and list prices and, for discounted products, an empty
    ``table#discount-table``; the discount tiers live in a JSON document served
    from ``productSelectedJson.do`` with the same ``prodId``/``catId``.
    """

    name = "ebucks"
    domains = ["www.ebucks.com"]
    shapes = (
        (PageKind.HOME, re.compile(r"/web/shop/shopHome\.do$")),
        (PageKind.CATEGORY, re.compile(r"/web/shop/categorySelected\.do$")),
        (PageKind.PRODUCT, re.compile(r"/web/shop/productSelected\.do$")),
        (PageKind.FOLLOW_UP, re.compile(r"/web/shop/productSelectedJson\.do$")),
    )

    # ---- Listing pages (home + category) -----------------------------------

    def parse_listing(self, url: str, body: str) -> ListingPage:
        return ListingPage(url=url, links=extract_links(make_soup(body), url))

    # ---- Product detail page -------------------------------------------------

    def parse_product(self, url: str, body: str) -> Optional[ProductPage]:
        soup = make_soup(body)
        form = soup.select_one("form[name=productOptionsBean]")
        if form is None:
            logger.debug("No product form on %s", url)
            return None

        partial = PartialProduct(
            url=url,
            category_id=query_param(url, "catId"),
            product_id=query_param(url, "prodId"),
            name=text_or_none(soup.select_one("h2.product-name")) or "",
            price=self._amount(soup, "#randPrice", NO_PRICE, url),
            savings=self._amount(soup, ".was-price .randValue", 0.0, url),
        )
        hidden = CorrelationKey(
            category_id=self._hidden_value(form, "catId"),
            product_id=self._hidden_value(form, "prodId"),
        )
        has_discount = soup.select_one("table#discount-table") is not None
        return ProductPage(partial=partial, hidden_key=hidden, has_discount=has_discount)

    def follow_up_url(self, product_url: str) -> str:
        """Swap the detail endpoint for the discount JSON endpoint, keeping the ids."""
        parts = urlsplit(product_url)
        path = _PRODUCT_PATH_RE.sub("productSelectedJson.do", parts.path)
        query = urlencode([
            ("prodId", query_param(product_url, "prodId")),
            ("catId", query_param(product_url, "catId")),
        ])
        return urlunsplit((parts.scheme, parts.netloc, path, query, ""))

    # ---- Discount follow-up ---------------------------------------------------

    def parse_discount(self, url: str, body: str) -> DiscountPage:
        key = CorrelationKey(query_param(url, "catId"), query_param(url, "prodId"))
        try:
            tiers = self.decode_tiers(body)
        except MalformedContent as exc:
            logger.warning("Malformed discount payload for %s: %s", url, exc)
            return DiscountPage(url=url, key=key, malformed=True)
        # The deepest tier is the one that applies.
        return DiscountPage(url=url, key=key, tier=tiers[-1] if tiers else None)

    @staticmethod
    def decode_tiers(body: str) -> List[DiscountTier]:
        """
        Decode ``{"productDetail": {"discount": [{"percent", "ebucksPrice",
        "ebucksSavings"}, ...]}}``. An empty or missing list means no discount.
        """
        try:
            payload: Any = json.loads(body)
        except ValueError as exc:
            raise MalformedContent(f"invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise MalformedContent("payload is not an object")

        detail = payload.get("productDetail")
        if detail is None:
            return []
        if not isinstance(detail, dict):
            raise MalformedContent("productDetail is not an object")
        rows = detail.get("discount") or []
        if not isinstance(rows, list):
            raise MalformedContent("discount is not a list")

        tiers: List[DiscountTier] = []
        for row in rows:
            try:
                tiers.append(
                    DiscountTier(
                        percent=float(row["percent"]),
                        points_price=float(row["ebucksPrice"]),
                        points_savings=float(row.get("ebucksSavings", 0)),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise MalformedContent(f"bad discount row {row!r}") from exc
        return tiers

    # ---- Helpers ----------------------------------------------------------------

    def _amount(self, soup: BeautifulSoup, selector: str, default: float, url: str) -> float:
        text = text_or_none(soup.select_one(selector))
        if not text:
            return default
        try:
            return parse_rands(text)
        except ValueError:
            logger.warning("Could not parse amount %r (%s) on %s", text, selector, url)
            return default

    def _hidden_value(self, form, name: str) -> str:
        node = form.select_one(f"input[name={name}]")
        if node is None:
            return ""
        return (node.get("value") or "").strip()
