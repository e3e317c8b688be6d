from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from ..config import CrawlConfig
from ..adapters.base import ResolvedProduct
from ..engines.base import CrawlReport
from ..errors import ExportFailed, FatalCrawlError
from ..export.base import prepare_output_dir
from ..utils.logging import setup_logging
from ..utils.loader import load_symbol

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Crawl the eBucks shop and write one record per product")
    p.add_argument("start_url", nargs="?", default=None, help="Catalog home URL (default from config)")
    p.add_argument("--config", type=str, help="Path to config JSON", default=None)
    p.add_argument("--dir", dest="output_dir", type=str, default=None,
                   help="Directory in which to write scraped data files")
    p.add_argument("--cache", dest="cache_dir", type=str, default=None, help="Response cache directory")
    p.add_argument("--threads", type=int, default=None, help="Number of concurrent workers")
    p.add_argument("--overwrite", action="store_true", default=None,
                   help="Wipe and reuse the data dir instead of creating a timestamped run directory")
    p.add_argument("--order", choices=["fifo", "lifo"], default=None,
                   help="Frontier order: fifo (breadth-first) or lifo (depth-first)")
    p.add_argument("--no-limits", action="store_true", help="Disable the politeness delay and jitter")
    p.add_argument("--max-retries", type=int, default=None, help="Failures per URL before the crawl aborts")
    p.add_argument("--allowed-domains", type=str, default=None,
                   help="Comma-separated list of allowed domains (empty string allows any)")
    p.add_argument("--engine", type=str, default=None, help="Engine dotted path (module:ClassName)")
    p.add_argument("--exporters", type=str, default=None,
                   help="Comma-separated exporter dotted paths")
    p.add_argument("--diagnostics", dest="diagnostics_dir", type=str, default=None,
                   help="Directory for discovered/visited/resolved journals")
    p.add_argument("--log-level", type=str, default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--serve", action="store_true", help="Run REST API server instead of a CLI crawl")
    p.add_argument("--host", type=str, default="127.0.0.1", help="API host (when --serve)")
    p.add_argument("--port", type=int, default=8000, help="API port (when --serve)")
    return p


def _load_config(args: argparse.Namespace) -> CrawlConfig:
    if args.config:
        cfg = CrawlConfig.from_file(args.config)
    else:
        cfg = CrawlConfig.from_env()

    if args.start_url:
        cfg.start_url = args.start_url
    if args.output_dir:
        cfg.output_dir = args.output_dir
    if args.cache_dir:
        cfg.cache_dir = args.cache_dir
    if args.threads is not None:
        cfg.threads = args.threads
    if args.overwrite:
        cfg.overwrite = True
    if args.order:
        cfg.frontier_order = args.order
    if args.no_limits:
        cfg.delay = 0.0
        cfg.jitter = 0.0
    if args.max_retries is not None:
        cfg.max_retries = args.max_retries
    if args.allowed_domains is not None:
        cfg.allowed_domains = [d.strip() for d in args.allowed_domains.split(",") if d.strip()]
    if args.engine:
        cfg.engine = args.engine
    if args.exporters:
        cfg.exporters = [e.strip() for e in args.exporters.split(",") if e.strip()]
    if args.diagnostics_dir:
        cfg.diagnostics_dir = args.diagnostics_dir

    cfg.validate()
    return cfg


def run_server(host: str, port: int) -> None:
    try:
        import uvicorn  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dep
        raise SystemExit("To run the API, install the api extra: pip install 'dealz-crawler[api]'") from exc
    uvicorn.run("dealz_crawler.apis.app:app", host=host, port=port)


def run_crawl(cfg: CrawlConfig, output_dir: Path) -> CrawlReport:
    """Crawl with the configured engine, writing every product through every exporter."""
    # Dynamic engine + exporter loading so upgrades don't require code edits.
    engine_cls = load_symbol(cfg.engine)
    exporters = [load_symbol(dotted)() for dotted in cfg.exporters]

    def on_product(product: ResolvedProduct) -> None:
        for exporter in exporters:
            try:
                exporter.write(product, output_dir)
            except OSError as exc:
                raise ExportFailed(
                    f"{type(exporter).__name__} could not write {product.category_id}/{product.product_id}: {exc}",
                    url=product.url,
                ) from exc

    async def _run() -> CrawlReport:
        engine = engine_cls(cfg, on_product)
        return await engine.crawl()

    return asyncio.run(_run())


def run_cli(argv: List[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.serve:
        run_server(args.host, args.port)
        return 0

    try:
        cfg = _load_config(args)
    except (ValueError, OSError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    output_dir = prepare_output_dir(cfg.output_dir, cfg.overwrite)
    try:
        report = run_crawl(cfg, output_dir)
    except FatalCrawlError as exc:
        logger.critical("Crawl aborted: %s", exc)
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    logger.info("Done! %s | Output: %s",
                " | ".join(f"{k}: {v}" for k, v in report.summary().items()),
                output_dir)
    return 0


def main() -> int:
    return run_cli(sys.argv[1:])
