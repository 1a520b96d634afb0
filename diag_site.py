"""
Site probe: loads each primary listing page and records what the runner sees.

    python diag_site.py

Writes ``site_<day>.png``, ``site_<day>.html`` and ``site_report.json`` under
the diag directory.
"""

import asyncio
import logging
import re
import sys
from datetime import datetime, timezone

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from harvest.browser import BrowserSession
from harvest.config import CARD_SELECTOR, Settings
from harvest.diagnostics import Diagnostics, configure_logging
from harvest.listing import visible_text

logger = logging.getLogger("DiagSite")

STATUS_KEYWORDS = ("جارية", "مباشر", "الآن", "انتهت", "انتهى", "live", "ft", "finished", "ended")
SETTLE_MS = 2000


def page_stats(html: str) -> dict:
    soup = BeautifulSoup(html or "", "html.parser")
    cards = soup.select(CARD_SELECTOR)
    body = visible_text(html).lower()
    title = soup.title.get_text(strip=True) if soup.title else ""
    return {
        "match_count": len(cards),
        "has_goals": soup.select_one(f"{CARD_SELECTOR} .RS-goals") is not None,
        "has_keywords": any(k in body for k in STATUS_KEYWORDS),
        "sample_text": [re.sub(r"\s+", " ", c.get_text(" ")).strip() for c in cards[:5]],
        "title": title,
    }


async def probe(settings: Settings, diagnostics: Diagnostics) -> dict:
    report = {"ts": datetime.now(timezone.utc).isoformat(), "pages": {}}
    async with BrowserSession(settings) as session:
        async with session.new_page() as page:
            for day_key, url in settings.primary_days():
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=settings.list_timeout_ms)
                    await page.wait_for_timeout(SETTLE_MS)
                    html = await page.content()
                except PlaywrightError as e:
                    logger.error(f"{day_key}: {e}")
                    report["pages"][day_key] = {"url": url, "error": str(e)}
                    continue

                report["pages"][day_key] = {"url": url, **page_stats(html)}
                await diagnostics.screenshot(page, f"site_{day_key}.png")
                diagnostics.write_html(f"site_{day_key}.html", html)
                logger.info(f"{day_key}: {report['pages'][day_key]['match_count']} cards")
    return report


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings.debug)
    diagnostics = Diagnostics(settings.diag_dir, enabled=True)
    diagnostics.touch(f"site headless={settings.headless}")
    try:
        report = asyncio.run(probe(settings, diagnostics))
    except PlaywrightError as e:
        logger.error(f"Fatal: {e}")
        diagnostics.write("site_fatal.txt", str(e))
        return 3
    diagnostics.write("site_report.json", report)
    logger.info(f"Wrote site probe diagnostics to {settings.diag_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
