"""In-memory stand-ins for the Playwright page/session surface the pipeline uses."""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Dict, Sequence

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from harvest.scoring import HostBlocklist


@dataclass
class Site:
    html: str = ""
    requests: Sequence[str] = ()
    frames: Sequence[str] = ()


class FakeRequest:
    def __init__(self, url):
        self.url = url


class FakeFrame:
    def __init__(self, url):
        self.url = url


class FakeEmitter:
    def __init__(self):
        self.listeners = {}

    def on(self, event, cb):
        self.listeners.setdefault(event, []).append(cb)

    def remove_listener(self, event, cb):
        self.listeners[event].remove(cb)

    def emit(self, event, arg):
        for cb in list(self.listeners.get(event, [])):
            cb(arg)


class FakeMouse:
    def __init__(self):
        self.wheels = []

    async def wheel(self, dx, dy):
        self.wheels.append((dx, dy))


class FakeLocator:
    def __init__(self, elements):
        self.elements = list(elements)
        self.clicked = False

    async def count(self):
        return len(self.elements)

    @property
    def first(self):
        return FakeLocator(self.elements[:1])

    async def get_attribute(self, name):
        return self.elements[0].get(name) if self.elements else None

    async def click(self, timeout=None):
        self.clicked = True


class FakePage(FakeEmitter):
    """Serves ``sites[url]``; any other URL fails like a navigation timeout."""

    def __init__(self, sites: Dict[str, Site]):
        super().__init__()
        self.sites = sites
        self.url = "about:blank"
        self.frames = []
        self.context = FakeEmitter()
        self.mouse = FakeMouse()
        self.visits = []
        self._html = ""

    async def goto(self, url, wait_until=None, timeout=None):
        self.visits.append(url)
        site = self.sites.get(url)
        if site is None:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url
        self._html = site.html
        self.frames = [FakeFrame(url)] + [FakeFrame(u) for u in site.frames]
        for req in site.requests:
            self.emit("request", FakeRequest(req))

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def wait_for_timeout(self, ms):
        await asyncio.sleep(0)

    def locator(self, selector):
        return FakeLocator(BeautifulSoup(self._html, "html.parser").select(selector))

    async def content(self):
        return self._html

    async def evaluate(self, script):
        soup = BeautifulSoup(self._html, "html.parser")
        return "\n".join(s.get_text() for s in soup.find_all("script"))

    async def screenshot(self, **kwargs):
        return b""


class FakeSession:
    """Hands out one FakePage per ``new_page()`` and tracks how many are open."""

    def __init__(self, sites: Dict[str, Site], blocklist=None):
        self.sites = sites
        self.blocklist = blocklist or HostBlocklist()
        self.open = 0
        self.max_open = 0
        self.opened = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    @contextlib.asynccontextmanager
    async def new_page(self):
        self.open += 1
        self.opened += 1
        self.max_open = max(self.max_open, self.open)
        try:
            yield FakePage(self.sites)
        finally:
            self.open -= 1


class FakeStore:
    def __init__(self, existing=(), fail_read=None, fail_write=None):
        self.existing = list(existing)
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.reads = []
        self.refreshed = None

    def fetch_existing(self, days):
        self.reads.append(list(days))
        if self.fail_read:
            raise self.fail_read
        return list(self.existing)

    def refresh_days(self, days, records):
        if self.fail_write:
            raise self.fail_write
        self.refreshed = (list(days), list(records))
        return len(records)
