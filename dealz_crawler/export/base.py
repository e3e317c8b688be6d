from __future__ import annotations

import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from ..adapters.base import ResolvedProduct

_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9-]+")

RUN_DIR_FORMAT = "%Y-%m-%dT%H-%M-%S%z"


class Exporter(Protocol):
    def write(self, product: ResolvedProduct, directory: Path) -> Path:
        """Persist one product below ``directory`` and return the file written."""
        ...


def sanitise_filename(name: str) -> str:
    return _UNSAFE_FILENAME_RE.sub("-", name).strip("-") or "product"


def product_stem(product: ResolvedProduct) -> str:
    # Names are not unique across the catalog; the ids are.
    return f"{sanitise_filename(product.name)}-{product.category_id}-{product.product_id}"


def bucket_dir(directory: Path, product: ResolvedProduct) -> Path:
    """Discounted products are grouped by percentage off (``40%``), the rest under ``other``."""
    if product.discounted:
        return directory / f"{product.percentage:.0f}%"
    return directory / "other"


def prepare_output_dir(base: str | Path, overwrite: bool, now: Optional[datetime] = None) -> Path:
    """
    Without ``overwrite`` every run gets a fresh timestamped directory inside
    ``base``; with it ``base`` itself is wiped and reused.
    """
    base = Path(base)
    if overwrite:
        if base.exists():
            shutil.rmtree(base)
        target = base
    else:
        now = now or datetime.now().astimezone()
        target = base / now.strftime(RUN_DIR_FORMAT)
    target.mkdir(parents=True, exist_ok=True)
    return target
