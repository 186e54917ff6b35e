"""JSON snapshot of browser session cookies kept between attempts."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


class CookieStore:
    """Best-effort cookie persistence backed by a single JSON file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> list[dict[str, Any]]:
        """Return saved cookies, or an empty list when no usable snapshot exists."""

        if not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable cookie snapshot %s: %s", self.path, exc)
            return []

        # Accept both a bare list and the {"cookies": [...]} session layout.
        if isinstance(data, dict):
            data = data.get("cookies", [])
        if not isinstance(data, list):
            logger.warning("ignoring malformed cookie snapshot %s", self.path)
            return []
        return [item for item in data if isinstance(item, dict)]

    def save(self, cookies: list[dict[str, Any]]) -> None:
        """Overwrite the snapshot with ``cookies``."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(cookies, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("saved %d cookie(s) to %s", len(cookies), self.path)
