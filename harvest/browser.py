"""
Playwright wiring.

The pipeline only ever talks to the browser through this module:

- ``BrowserSession`` launches Chromium once per run and hands out isolated
  sessions (one browser context + page each) via ``new_page()``.
- every session is hardened: playwright-stealth patches, popup/dialog
  neutering, and a request route that drops ad hosts, images and fonts.
- ``CandidateCollector`` records every URL a page tries to reach while a
  single match is being resolved, and unhooks itself afterwards.
"""

import contextlib
import json
import logging
from typing import Dict, List, Optional

import requests
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright
from playwright_stealth.stealth import Stealth

from harvest.config import LAUNCH_ARGS, Settings
from harvest.scoring import HostBlocklist

logger = logging.getLogger("Browser")

BLOCKED_RESOURCE_TYPES = ("image", "font")
POPUP_SETTLE_MS = 3000

ANTI_POPUP_JS = """
(adHosts => {
  try {
    const isBad = (host) => adHosts.some((h) => host === h || host.endsWith("." + h));
    const origOpen = window.open.bind(window);
    window.open = function (url, name, features) {
      try {
        if (url) {
          const abs = new URL(String(url), location.href);
          if (isBad(abs.hostname.toLowerCase())) return null;
        }
      } catch (e) {}
      return origOpen(url, name, features);
    };
    window.alert = () => {};
    window.confirm = () => false;
    window.prompt = () => null;
    Object.defineProperty(window, "onbeforeunload", { get() { return null; }, set() {} });
  } catch (e) {}
})(%s);
"""


def load_blocklist(url: str = "", timeout: int = 15) -> HostBlocklist:
    """
    Static ad host list, plus a remote hosts-file when ``url`` is given.

    Accepts ``0.0.0.0 host`` / ``127.0.0.1 host`` lines and bare host lines.
    A failed download leaves the static list in place.
    """
    blocklist = HostBlocklist()
    if not url:
        return blocklist
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"[WARN] Blocklist fetch failed ({url}): {e}")
        return blocklist

    hosts = []
    for line in resp.text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        host = parts[-1] if len(parts) > 1 else parts[0]
        if "." in host and host not in ("localhost", "0.0.0.0"):
            hosts.append(host)
    logger.info(f"Blocklist: {len(hosts)} remote hosts loaded.")
    return blocklist.union(hosts)


async def _dismiss_dialog(dialog):
    try:
        await dialog.dismiss()
    except PlaywrightError:
        pass


async def harden_context(context, blocklist: HostBlocklist) -> None:
    await Stealth(navigator_languages_override=("ar-EG", "ar")).apply_stealth_async(context)
    await context.add_init_script(script=ANTI_POPUP_JS % json.dumps(sorted(blocklist.hosts)))

    async def _route(route):
        request = route.request
        try:
            if request.resource_type in BLOCKED_RESOURCE_TYPES or blocklist.blocks(request.url):
                await route.abort()
            else:
                await route.fallback()
        except PlaywrightError as e:
            # Page went away mid-request
            logger.debug(f"route {request.url[:120]}: {e}")

    await context.route("**/*", _route)


class BrowserSession:
    """One Chromium per run; ``new_page()`` yields a fresh isolated session."""

    def __init__(self, settings: Settings, blocklist: Optional[HostBlocklist] = None):
        self.settings = settings
        self.blocklist = blocklist or HostBlocklist()
        self._pw = None
        self.browser = None

    async def __aenter__(self):
        self._pw = await async_playwright().start()
        self.browser = await self._pw.chromium.launch(headless=self.settings.headless, args=LAUNCH_ARGS)
        logger.info(f"Chromium launched (headless={self.settings.headless}).")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if self.browser:
                await self.browser.close()
        finally:
            if self._pw:
                await self._pw.stop()

    @contextlib.asynccontextmanager
    async def new_page(self):
        context = await self.browser.new_context(**self.settings.context_options())
        try:
            await harden_context(context, self.blocklist)
            page = await context.new_page()
            page.on("dialog", _dismiss_dialog)
            yield page
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"context close: {e}")


class CandidateCollector:
    """
    Append-only, insertion-ordered set of URLs seen during one resolution.

        async with CandidateCollector(page) as collector:
            await page.goto(url)
            ...
        collector.urls
    """

    def __init__(self, page):
        self.page = page
        self._urls: Dict[str, None] = {}

    @property
    def urls(self) -> List[str]:
        return list(self._urls)

    def add(self, url: Optional[str]) -> None:
        if url and url not in self._urls:
            self._urls[url] = None

    def extend(self, urls) -> None:
        for u in urls:
            self.add(u)

    def _on_request(self, request):
        self.add(request.url)

    async def _on_popup(self, popup):
        await self._capture(popup)

    async def _on_context_page(self, new_page):
        if new_page is self.page:
            return
        await self._capture(new_page)

    async def _capture(self, other):
        try:
            await other.wait_for_load_state("domcontentloaded", timeout=POPUP_SETTLE_MS)
        except PlaywrightError:
            pass
        self.add(other.url)
        try:
            await other.close()
        except PlaywrightError:
            pass

    async def __aenter__(self):
        self.page.on("request", self._on_request)
        self.page.on("popup", self._on_popup)
        self.page.context.on("page", self._on_context_page)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.page.remove_listener("request", self._on_request)
        self.page.remove_listener("popup", self._on_popup)
        self.page.context.remove_listener("page", self._on_context_page)
