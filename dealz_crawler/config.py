from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from typing import List, Optional, Dict, Any
import os
import json

from .version import CONFIG_SCHEMA_VERSION
from .adapters.ebucks import SHOP_HOME_URL

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT x.y; Win64; x64; rv:10.0) Gecko/20100101 Firefox/10.0"

# The shop serves a no-script page unless this cookie is present.
DEFAULT_HEADERS = {"Cookie": "js=1637881630272"}

DEFAULT_ENGINE = "dealz_crawler.engines.simple_engine:SimpleCrawlEngine"
DEFAULT_EXPORTERS = [
    "dealz_crawler.export.json_exporter:JSONExporter",
    "dealz_crawler.export.markdown_exporter:MarkdownExporter",
]


@dataclass
class CrawlConfig:
    """
    Canonical configuration object passed throughout the system.
    Keep it dataclass-only (no heavy deps) so the CLI and API share it.
    """
    schema_version: int = CONFIG_SCHEMA_VERSION
    start_url: str = SHOP_HOME_URL
    # None restricts the crawl to the adapter's own domains; [] lifts the restriction.
    allowed_domains: Optional[List[str]] = None
    threads: int = 1
    frontier_order: str = "fifo"
    # Politeness: sleep delay + uniform(0, jitter) before each fetch.
    delay: float = 2.0
    jitter: float = 5.0
    max_retries: int = 5
    backoff_base: float = 2.0
    backoff_cap: float = 300.0
    max_redirects: int = 10
    request_timeout: float = 300.0
    user_agent: str = DEFAULT_USER_AGENT
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    cache_dir: Optional[str] = None
    diagnostics_dir: Optional[str] = None
    # Dotted paths so the engine and exporters can be swapped without code changes.
    engine: str = DEFAULT_ENGINE
    exporters: List[str] = field(default_factory=lambda: list(DEFAULT_EXPORTERS))
    output_dir: str = "data"
    overwrite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def request_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, **self.headers}

    # ---------- Loaders ----------

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """
        Build config from environment variables (all optional).
        """
        def _get(name: str, default: str) -> str:
            return os.getenv(name, default)

        allowed = os.getenv("DEALZ_ALLOWED_DOMAINS")
        allowed_domains = None
        if allowed is not None:
            allowed_domains = [d.strip() for d in allowed.split(",") if d.strip()]

        exporters = [e.strip() for e in _get("DEALZ_EXPORTERS", "").split(",") if e.strip()]

        return cls(
            start_url=_get("DEALZ_START_URL", SHOP_HOME_URL),
            allowed_domains=allowed_domains,
            threads=int(_get("DEALZ_THREADS", "1")),
            frontier_order=_get("DEALZ_FRONTIER_ORDER", "fifo"),
            delay=float(_get("DEALZ_DELAY", "2.0")),
            jitter=float(_get("DEALZ_JITTER", "5.0")),
            max_retries=int(_get("DEALZ_MAX_RETRIES", "5")),
            backoff_base=float(_get("DEALZ_BACKOFF_BASE", "2.0")),
            backoff_cap=float(_get("DEALZ_BACKOFF_CAP", "300.0")),
            max_redirects=int(_get("DEALZ_MAX_REDIRECTS", "10")),
            request_timeout=float(_get("DEALZ_REQUEST_TIMEOUT", "300.0")),
            user_agent=_get("DEALZ_USER_AGENT", DEFAULT_USER_AGENT),
            cache_dir=os.getenv("DEALZ_CACHE_DIR") or None,
            diagnostics_dir=os.getenv("DEALZ_DIAGNOSTICS_DIR") or None,
            engine=_get("DEALZ_ENGINE", DEFAULT_ENGINE),
            exporters=exporters or list(DEFAULT_EXPORTERS),
            output_dir=_get("DEALZ_OUTPUT_DIR", "data"),
            overwrite=_get("DEALZ_OVERWRITE", "").lower() in ("1", "true", "yes"),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "CrawlConfig":
        """
        Load configuration from a JSON file, migrating older schema versions.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        data = migrate_config(data)
        unknown = sorted(set(data) - {f.name for f in fields(cls)})
        if unknown:
            raise ValueError(f"{path}: unknown config keys {', '.join(unknown)}")
        return cls(**data)

    # ---------- Validation ----------

    def validate(self) -> None:
        if not self.start_url:
            raise ValueError("start_url cannot be empty")
        if self.threads <= 0:
            raise ValueError("threads must be > 0")
        if self.frontier_order not in ("fifo", "lifo"):
            raise ValueError("frontier_order must be 'fifo' or 'lifo'")
        if self.delay < 0 or self.jitter < 0:
            raise ValueError("delay and jitter must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be >= 0")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if not self.exporters:
            raise ValueError("at least one exporter is required")


def migrate_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Migrate config dict to the latest schema version.
    Keep this pure and additive. Add migrations here as you bump schema.
    """
    raw = dict(raw)
    schema = raw.get("schema_version", 1)

    if schema < 2:
        # v1 mirrored the multi-site crawler: a list of start URLs, one exporter.
        start_urls = raw.pop("start_urls", None)
        if start_urls and "start_url" not in raw:
            raw["start_url"] = start_urls[0]
        if "max_concurrency" in raw:
            raw.setdefault("threads", raw.pop("max_concurrency"))
        if "retries" in raw:
            raw.setdefault("max_retries", raw.pop("retries"))
        exporter = raw.pop("exporter", None)
        if exporter and "exporters" not in raw:
            raw["exporters"] = [exporter]
        output_path = raw.pop("output_path", None)
        if output_path and "output_dir" not in raw:
            raw["output_dir"] = output_path
        for dropped in ("max_depth", "extra_adapters", "keywords"):
            raw.pop(dropped, None)

    raw["schema_version"] = CONFIG_SCHEMA_VERSION
    return raw
