from __future__ import annotations

import json
import logging
from typing import List
from pathlib import Path

from .base import bucket_dir, product_stem
from ..adapters.base import ResolvedProduct

logger = logging.getLogger(__name__)


class JSONExporter:
    """
    One JSON record per product under ``<bucket>/raw/``; the static site
    generator reads these back with ``load_from_dir``.
    """

    def write(self, product: ResolvedProduct, directory: Path) -> Path:
        raw_dir = bucket_dir(Path(directory), product) / "raw"
        raw_dir.mkdir(parents=True, exist_ok=True)
        path = raw_dir / f"{product_stem(product)}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(product.to_dict(), f, indent=2, ensure_ascii=False)
        return path

    @staticmethod
    def load(path: str | Path) -> ResolvedProduct:
        with open(path, "r", encoding="utf-8") as f:
            return ResolvedProduct.from_dict(json.load(f))

    @classmethod
    def load_from_dir(cls, directory: str | Path) -> List[ResolvedProduct]:
        """
        Decode every record below ``directory``. Raises FileNotFoundError when
        the directory is missing so callers can decide whether that means "no deals".
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"data dir {directory} does not exist")
        products = [cls.load(path) for path in sorted(directory.rglob("*.json"))]
        logger.debug("Loaded %d products from %s", len(products), directory)
        return products
