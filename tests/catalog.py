"""A fake eBucks shop: page renderers plus an in-memory transport serving them."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

from dealz_crawler.utils.http import FetchResponse
from dealz_crawler.utils.parsing import query_param

BASE = "https://www.ebucks.com"
HOME_PATH = "/web/shop/shopHome.do"


def product_url(category_id: str, product_id: str, base: str = BASE) -> str:
    return f"{base}/web/shop/productSelected.do?prodId={product_id}&catId={category_id}"


def follow_up_url(category_id: str, product_id: str, base: str = BASE) -> str:
    return f"{base}/web/shop/productSelectedJson.do?prodId={product_id}&catId={category_id}"


def category_url(category_id: str, base: str = BASE) -> str:
    return f"{base}/web/shop/categorySelected.do?catId={category_id}"


@dataclass
class SeedProduct:
    category_id: str
    product_id: str
    name: str
    price: float
    savings: float = 0.0
    # None: the static page has no discount table at all.
    tiers: Optional[List[Dict]] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.category_id, self.product_id)


def make_products(n: int, categories: int = 1) -> List[SeedProduct]:
    return [
        SeedProduct(
            category_id=str(100 + i % categories),
            product_id=str(i),
            name=f"Product {i}",
            price=float(i * 1000),
        )
        for i in range(n)
    ]


def render_home(category_ids: List[str]) -> str:
    tags = []
    for c in category_ids:
        tags.append(f'<a href="/web/shop/categorySelected.do?catId={c}">Category {c}</a>')
        # Same category, with the session cruft the real site injects.
        tags.append(
            f'<a href="/web/shop/categorySelected.do;jsessionid=E1FECBC2B41C?catId={c}'
            f'&amp;extraInfo=cellphone_number">Category {c} again</a>'
        )
    return f"""<!DOCTYPE html>
<html lang="en">
  <body>
    <a href="/web/shop/shopHome.do" class="active header-top-shop">SHOP</a>
    <a href="https://www.example.com/partner">Partner</a>
    <a href="/static/img/logo.png">logo</a>
    {"".join(tags)}
  </body>
</html>"""


def render_category(products: List[SeedProduct], extra_links: List[str] = ()) -> str:
    tags = [
        f'<a href="/web/shop/productSelected.do?prodId={p.product_id}&amp;catId={p.category_id}">{p.name}</a>'
        for p in products
    ]
    tags.extend(f'<a href="{link}">extra</a>' for link in extra_links)
    return f"""<!DOCTYPE html>
<html lang="en">
  <body>
    <a href="/web/shop/shopHome.do" class="active header-top-shop">SHOP</a>
    {"".join(tags)}
  </body>
</html>"""


def render_product(p: SeedProduct, hidden_prod: Optional[str] = None, hidden_cat: Optional[str] = None) -> str:
    savings = f"R{p.savings:.2f}" if p.savings else ""
    table = '<table id="discount-table" class="discount-table"></table>' if p.tiers is not None else ""
    return f"""<!DOCTYPE html>
<html lang="en">
  <body>
    <form name="productOptionsBean" method="post" action="/web/shop/productOptionSelected.do">
      <div class="product-detail-frame">
        <div class="info-container-frame">
          <h2 id="product-name" class="product-name " data-maincat="842815916">{p.name}</h2>
          <div class="product-price holiday">
            <p class="was-price">Save: <strong><span class="randValue">{savings}</span></strong></p>
            <p>Pay in Rands: <strong><span id="randPrice" class="randValue">R{p.price:.2f}</span></strong></p>
            <p>Pay in eBucks: <strong><span id="eBPrice" class="eBucksValue">eB{int(p.price * 10)}</span></strong></p>
          </div>
          {table}
        </div>
      </div>
      <input type="hidden" name="prodId" value="{hidden_prod if hidden_prod is not None else p.product_id}">
      <input type="hidden" name="catId" value="{hidden_cat if hidden_cat is not None else p.category_id}">
      <input type="hidden" name="skuId" value="1211817758">
    </form>
  </body>
</html>"""


def render_follow_up(p: SeedProduct) -> str:
    return json.dumps({
        "productDetail": {
            "prodId": p.product_id,
            "catId": p.category_id,
            "discount": p.tiers or [],
        }
    })


Outcome = Union[int, Exception, FetchResponse]


class FakeCatalog:
    """
    Serves the fake shop through the Transport interface.

    ``script(url, ...)`` queues one-off outcomes for a URL (a status code, an
    exception to raise, or a full response); once used up, the URL falls back
    to the normal routes. ``bodies`` overrides the body served for a URL.
    """

    def __init__(self, products: List[SeedProduct], base: str = BASE) -> None:
        self.base = base
        self.products = {p.key: p for p in products}
        self.categories: Dict[str, List[SeedProduct]] = {}
        for p in products:
            self.categories.setdefault(p.category_id, []).append(p)
        self.category_extra_links: Dict[str, List[str]] = {}
        self.bodies: Dict[str, str] = {}
        self.requests: List[str] = []
        self.closed = False
        self._scripted: Dict[str, List[Outcome]] = {}

    @property
    def home_url(self) -> str:
        return self.base + HOME_PATH

    def script(self, url: str, *outcomes: Outcome) -> None:
        self._scripted.setdefault(url, []).extend(outcomes)

    def route(self, url: str) -> Tuple[int, str]:
        path = urlsplit(url).path
        cat = query_param(url, "catId")
        prod = query_param(url, "prodId")
        if path.endswith("/shopHome.do"):
            return 200, render_home(sorted(self.categories))
        if path.endswith("/categorySelected.do"):
            if cat not in self.categories:
                return 404, ""
            return 200, render_category(self.categories[cat], self.category_extra_links.get(cat, []))
        product = self.products.get((cat, prod))
        if path.endswith("/productSelected.do") and product is not None:
            return 200, render_product(product)
        if path.endswith("/productSelectedJson.do") and product is not None:
            return 200, render_follow_up(product)
        return 404, ""

    async def fetch(self, url: str, headers=None) -> FetchResponse:
        self.requests.append(url)
        queued = self._scripted.get(url)
        if queued:
            outcome = queued.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, FetchResponse):
                return outcome
            return FetchResponse(status=outcome, body="", final_url=url)
        if url in self.bodies:
            return FetchResponse(status=200, body=self.bodies[url], final_url=url)
        status, body = self.route(url)
        return FetchResponse(status=status, body=body, final_url=url)

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    """Stands in for asyncio.sleep; records the requested delays and returns at once."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
