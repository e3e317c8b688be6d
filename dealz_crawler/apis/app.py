from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

try:
    from fastapi import FastAPI, HTTPException
    from pydantic import BaseModel
except ImportError as exc:  # pragma: no cover - optional dependency
    raise RuntimeError(
        "FastAPI not installed. Install with `pip install 'dealz-crawler[api]'` "
        "or avoid using the API server."
    ) from exc

from ..adapters.base import ResolvedProduct
from ..config import CrawlConfig
from ..engines.base import CrawlReport
from ..errors import FatalCrawlError
from ..export.json_exporter import JSONExporter
from ..utils.loader import load_symbol
from ..version import __version__

logger = logging.getLogger(__name__)

app = FastAPI(title="dealz_crawler API", version=__version__)


class CrawlRequest(BaseModel):
    start_url: Optional[str] = None
    threads: Optional[int] = None
    frontier_order: Optional[str] = None
    allowed_domains: Optional[List[str]] = None
    delay: Optional[float] = None
    jitter: Optional[float] = None
    max_retries: Optional[int] = None


class Product(BaseModel):
    url: str
    name: str
    category_id: str
    product_id: str
    price: float
    savings: float
    percentage: float = 0.0


def _to_model(product: ResolvedProduct) -> Product:
    return Product(
        url=product.url,
        name=product.name,
        category_id=product.category_id,
        product_id=product.product_id,
        price=product.price,
        savings=product.savings,
        percentage=product.percentage,
    )


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "version": __version__}


@app.post("/crawl")
async def crawl(req: CrawlRequest) -> Dict[str, Any]:
    cfg = CrawlConfig.from_env()
    dump = getattr(req, "model_dump", None) or req.dict  # pydantic v2, then v1
    overrides = dump(exclude_none=True)
    for name, value in overrides.items():
        setattr(cfg, name, value)
    try:
        cfg.validate()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    products: List[ResolvedProduct] = []
    engine_cls = load_symbol(cfg.engine)
    engine = engine_cls(cfg, products.append)
    try:
        report: CrawlReport = await engine.crawl()
    except FatalCrawlError as exc:
        logger.error("Crawl aborted: %s", exc)
        raise HTTPException(status_code=502, detail=f"crawl aborted: {exc}") from exc

    return {
        "report": report.summary(),
        "skipped": report.skipped,
        "products": [_to_model(p) for p in products],
    }


@app.get("/products", response_model=List[Product])
async def products(run: str = "", discounted: Optional[bool] = None) -> List[Product]:
    """
    Records exported under the configured ``output_dir``; ``run`` picks one
    run directory inside it. Paths outside ``output_dir`` are refused.
    """
    root = Path(CrawlConfig.from_env().output_dir).resolve()
    data_dir = (root / run).resolve()
    if data_dir != root and root not in data_dir.parents:
        raise HTTPException(status_code=400, detail="run must stay inside the output directory")
    try:
        stored = JSONExporter.load_from_dir(data_dir)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if discounted is not None:
        stored = [p for p in stored if p.discounted == discounted]
    return [_to_model(p) for p in stored]
