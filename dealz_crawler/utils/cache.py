from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    On-disk cache of successful responses, one file per request.

    Files live under ``<dir>/<first two hex chars>/<sha1 of the URL>`` so a
    big crawl does not put every entry in one directory.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, url: str) -> Path:
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
        return self.directory / digest[:2] / digest

    def get(self, url: str) -> Optional[Dict[str, Any]]:
        path = self._path(url)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache entry %s for %s: %r", path, url, exc)
            return None

    def put(self, url: str, status: int, body: str, final_url: str) -> None:
        path = self._path(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"url": url, "status": status, "final_url": final_url, "body": body}, f)
        # Atomic so concurrent readers never see half a file.
        os.replace(tmp, path)
