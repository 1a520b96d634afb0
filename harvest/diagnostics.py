"""
Logging setup and on-disk run diagnostics.

``Diagnostics`` is created once per run and handed to whatever wants to dump
evidence (list page HTML, screenshots, raw rows, resolver traces). When it is
disabled every call is a no-op, and a failing dump never reaches the caller.
"""

import collections
import json
import logging
import os
from datetime import datetime, timezone

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
HTML_DUMP_LIMIT = 350000

logger = logging.getLogger("Diagnostics")


class RingBufferHandler(logging.Handler):
    """Keeps the last N formatted log lines for the /logs endpoint."""

    def __init__(self, maxlen: int = 100):
        super().__init__()
        self.buffer = collections.deque(maxlen=maxlen)
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record):
        try:
            self.buffer.append(self.format(record))
        except Exception:
            self.handleError(record)

    def tail(self, n: int = None):
        lines = list(self.buffer)
        return lines if n is None else lines[-n:]


def configure_logging(debug: bool = False, ring: RingBufferHandler = None) -> RingBufferHandler:
    ring = ring or RingBufferHandler()
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), ring],
    )
    return ring


def _default(o):
    if isinstance(o, datetime):
        return o.isoformat()
    if hasattr(o, "__dict__"):
        return vars(o)
    return str(o)


class Diagnostics:
    def __init__(self, root: str = "diag", enabled: bool = False):
        self.root = root
        self.enabled = enabled

    def _path(self, rel: str) -> str:
        full = os.path.join(self.root, rel)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        return full

    def touch(self, note: str = ""):
        self.write("_touch.txt", f"ok {datetime.now(timezone.utc).isoformat()} {note}\n")

    def write(self, rel: str, content) -> None:
        if not self.enabled:
            return
        try:
            if not isinstance(content, str):
                content = json.dumps(content, ensure_ascii=False, indent=2, default=_default)
            with open(self._path(rel), "w", encoding="utf-8") as f:
                f.write(content or "")
        except OSError as e:
            logger.debug(f"[DIAG] write {rel} failed: {e}")

    def write_html(self, rel: str, html: str) -> None:
        self.write(rel, (html or "")[:HTML_DUMP_LIMIT])

    async def screenshot(self, page, rel: str) -> None:
        if not self.enabled:
            return
        try:
            await page.screenshot(path=self._path(rel), full_page=True)
        except Exception as e:
            # Playwright error or OSError
            logger.debug(f"[DIAG] screenshot {rel} failed: {e}")
