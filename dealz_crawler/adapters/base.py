from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Pattern, Protocol, Sequence, Tuple, Union

from ..version import RECORD_SCHEMA_VERSION

#: Loyalty points per unit of display currency (100 points -> 10.00).
POINTS_PER_UNIT = 10

#: Price recorded when the static page shows none.
NO_PRICE = -1.0


class PageKind(str, Enum):
    HOME = "home"
    CATEGORY = "category"
    PRODUCT = "product"
    FOLLOW_UP = "follow-up"


class CorrelationKey(NamedTuple):
    category_id: str
    product_id: str


def points_to_display(points: float) -> float:
    return round(points / POINTS_PER_UNIT, 2)


@dataclass(frozen=True)
class DiscountTier:
    """One row of a product's discount schedule, amounts in loyalty points."""

    percent: float
    points_price: float
    points_savings: float

    @property
    def price(self) -> float:
        return points_to_display(self.points_price)

    @property
    def savings(self) -> float:
        return points_to_display(self.points_savings)


@dataclass
class PartialProduct:
    """What a product detail page tells us before any follow-up fetch."""

    url: str
    category_id: str
    product_id: str
    name: str = ""
    price: float = NO_PRICE
    savings: float = 0.0
    percentage: float = 0.0

    @property
    def key(self) -> CorrelationKey:
        return CorrelationKey(self.category_id, self.product_id)

    def apply_tier(self, tier: DiscountTier) -> None:
        self.percentage = float(tier.percent)
        self.price = tier.price
        self.savings = tier.savings

    def finalize(self) -> "ResolvedProduct":
        return ResolvedProduct(
            url=self.url,
            name=self.name,
            category_id=self.category_id,
            product_id=self.product_id,
            price=self.price,
            savings=self.savings,
            percentage=self.percentage,
        )


@dataclass(frozen=True)
class ResolvedProduct:
    """A finished product record. Immutable once emitted."""

    url: str
    name: str
    category_id: str
    product_id: str
    price: float
    savings: float
    percentage: float = 0.0

    @property
    def key(self) -> CorrelationKey:
        return CorrelationKey(self.category_id, self.product_id)

    @property
    def discounted(self) -> bool:
        return self.percentage > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["schema_version"] = RECORD_SCHEMA_VERSION
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedProduct":
        return cls(
            url=str(data["url"]),
            name=str(data.get("name", "")),
            category_id=str(data["category_id"]),
            product_id=str(data["product_id"]),
            price=float(data.get("price", NO_PRICE)),
            savings=float(data.get("savings", 0.0)),
            percentage=float(data.get("percentage", 0.0)),
        )


# ---- Typed page results handed back by the classifier ----


@dataclass
class ListingPage:
    url: str
    links: List[str] = field(default_factory=list)


@dataclass
class ProductPage:
    partial: PartialProduct
    # Identifiers embedded in the page as hidden form inputs.
    hidden_key: CorrelationKey
    has_discount: bool = False


@dataclass
class DiscountPage:
    url: str
    key: CorrelationKey
    tier: Optional[DiscountTier] = None
    malformed: bool = False


PageResult = Union[ListingPage, ProductPage, DiscountPage]


class SiteAdapter(Protocol):
    """
    Site-specific knowledge: which URL shapes exist and how to read each one.
    The engine owns HTTP, queueing and retries; adapters only parse.
    """

    name: str
    domains: List[str]
    # Checked in order; the first matching pattern decides the page kind.
    shapes: Sequence[Tuple[PageKind, Pattern[str]]]

    def parse_listing(self, url: str, body: str) -> ListingPage:
        ...

    def parse_product(self, url: str, body: str) -> Optional[ProductPage]:
        ...

    def parse_discount(self, url: str, body: str) -> DiscountPage:
        ...

    def follow_up_url(self, product_url: str) -> str:
        ...
