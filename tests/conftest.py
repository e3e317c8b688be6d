from __future__ import annotations

import asyncio

import pytest

from dealz_crawler.config import CrawlConfig
from dealz_crawler.engines.simple_engine import SimpleCrawlEngine

from catalog import FakeCatalog, SleepRecorder


@pytest.fixture
def make_config():
    def _make(**overrides) -> CrawlConfig:
        cfg = CrawlConfig(threads=4, delay=0.0, jitter=0.0)
        for name, value in overrides.items():
            setattr(cfg, name, value)
        return cfg
    return _make


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def crawl(make_config, sleeper):
    """Run a full crawl of a FakeCatalog; returns (engine, report, products)."""
    def _crawl(catalog: FakeCatalog, **overrides):
        overrides.setdefault("start_url", catalog.home_url)
        cfg = make_config(**overrides)
        products = []
        engine = SimpleCrawlEngine(cfg, products.append, transport=catalog, sleep=sleeper)
        report = asyncio.run(engine.crawl())
        return engine, report, products
    return _crawl
