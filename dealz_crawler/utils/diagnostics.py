from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Dict, Optional, TextIO

from ..adapters.base import ResolvedProduct


class DiagnosticLog:
    """
    Append-only crawl journals, one line per entry, flushed as written:

    - ``discovered.txt``: ``<canonical link> <referring page>``
    - ``visited.txt``: every URL actually fetched
    - ``resolved.txt``: ``<category id> <product id> <url>`` per emitted product
    - ``skipped.txt``: ``<url> <reason>``

    Pass ``directory=None`` for a log that records nothing.
    """

    NAMES = ("discovered", "visited", "resolved", "skipped")

    def __init__(self, directory: Optional[str | os.PathLike[str]] = None) -> None:
        self.directory = Path(directory) if directory else None
        self._lock = threading.Lock()
        self._files: Dict[str, TextIO] = {}
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.directory is not None

    def _write(self, name: str, line: str) -> None:
        if self.directory is None:
            return
        with self._lock:
            f = self._files.get(name)
            if f is None:
                f = open(self.directory / f"{name}.txt", "a", encoding="utf-8")
                self._files[name] = f
            f.write(line + "\n")
            f.flush()

    def discovered(self, link: str, referrer: str) -> None:
        self._write("discovered", f"{link} {referrer}")

    def visited(self, url: str) -> None:
        self._write("visited", url)

    def resolved(self, product: ResolvedProduct) -> None:
        self._write("resolved", f"{product.category_id} {product.product_id} {product.url}")

    def skipped(self, url: str, reason: str) -> None:
        self._write("skipped", f"{url} {reason}")

    def close(self) -> None:
        with self._lock:
            for f in self._files.values():
                f.close()
            self._files.clear()
