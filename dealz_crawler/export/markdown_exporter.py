from __future__ import annotations

from pathlib import Path

from .base import bucket_dir, product_stem
from ..adapters.base import ResolvedProduct

_TEMPLATE = """\
# Ebucks Dealz
## {name}
[Product Page]({url})

Price: {price:.2f}

Savings: {savings:.2f}
"""


class MarkdownExporter:
    """Human-readable summary beside the raw records."""

    def render(self, product: ResolvedProduct) -> str:
        text = _TEMPLATE.format(
            name=product.name, url=product.url, price=product.price, savings=product.savings
        )
        if product.discounted:
            text += f"\nPercentage off: {product.percentage:.0f}%\n"
        return text

    def write(self, product: ResolvedProduct, directory: Path) -> Path:
        target = bucket_dir(Path(directory), product)
        target.mkdir(parents=True, exist_ok=True)
        path = target / f"{product_stem(product)}.md"
        path.write_text(self.render(product), encoding="utf-8")
        return path
