"""
Listing page harvester.

Loads one day-tab, waits until the match-card count stops changing, nudges
lazy assets with a scroll, then reads the rendered HTML with BeautifulSoup.
Card extraction is a pure function over that HTML (``parse_listing_html``).
"""

import logging
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from harvest.config import BOT_HINTS, CARD_SELECTOR, LISTING_READY_SELECTOR, Settings
from harvest.diagnostics import Diagnostics
from harvest.models import MatchSummary
from harvest.textnorm import parse_score, parse_score_pair, status_from_classes

logger = logging.getLogger("ListingHarvester")

READY_TIMEOUT_MS = 30000
STABLE_MAX_WAIT_MS = 20000
STABLE_SETTLE_MS = 1400
STABLE_POLL_MS = 400

TIME_SELECTORS = (".MT_Time", ".TM_Time", ".match-time", ".MatchTime", ".AY_Time")
STATUS_SELECTORS = (".MT_Stat",)
SCORE_SELECTORS = (".RS-score", ".RS-Score", ".MT_Score", ".MatchScore", ".match-score", ".score")
LAZY_IMG_ATTRS = ("data-src", "data-lazy-src", "data-original")


# =============================================================================
# DOM helpers (shared with the detail page parser)
# =============================================================================

def pick_text(root, selectors) -> str:
    for sel in selectors:
        el = root.select_one(sel)
        if el is not None:
            text = el.get_text(strip=True)
            if text:
                return text
    return ""


def pick_logo(img) -> str:
    if img is None:
        return ""
    for attr in LAZY_IMG_ATTRS:
        value = (img.get(attr) or "").strip()
        if value:
            return value
    return (img.get("src") or "").strip()


def to_abs(url: str, base_url: str) -> str:
    if not url:
        return ""
    try:
        return urljoin(base_url, url)
    except ValueError:
        return url


def result_visibility(card) -> str:
    res = card.select_one(".MT_Result")
    if res is None:
        return "missing"
    style = (res.get("style") or "").replace(" ", "").lower()
    if "display:none" in style:
        return "hidden"
    return "visible"


def find_score(root) -> Optional[tuple]:
    """Goal cells (``.RS-goals``) first, then a ``2-1`` style score label."""
    goals = [g.get_text(strip=True) for g in root.select(".RS-goals")]
    if len(goals) >= 2:
        home, away = parse_score(goals[0]), parse_score(goals[1])
        if home is not None and away is not None:
            return home, away
    return parse_score_pair(pick_text(root, SCORE_SELECTORS))


def detect_challenge(text: str) -> bool:
    lower = (text or "")[:4000].lower()
    return any(h in lower for h in BOT_HINTS)


# =============================================================================
# Card extraction
# =============================================================================

def parse_card(card, day_key: str, base_url: str) -> Optional[MatchSummary]:
    teams = [t.get_text(strip=True) for t in card.select(".TM_Name")]
    home = teams[0] if teams else ""
    away = teams[1] if len(teams) > 1 else ""
    link = card.select_one("a[href]")
    detail_url = to_abs((link.get("href") or "").strip(), base_url) if link is not None else ""
    if not home or not away or not detail_url:
        return None

    imgs = card.select(".TM_Logo img")
    return MatchSummary(
        day_key=day_key,
        home_team=home,
        away_team=away,
        detail_url=detail_url,
        home_logo=to_abs(pick_logo(imgs[0] if imgs else None), base_url),
        away_logo=to_abs(pick_logo(imgs[1] if len(imgs) > 1 else None), base_url),
        data_start=(card.get("data-start") or "").strip() or None,
        time_text=pick_text(card, TIME_SELECTORS) or None,
        status_text=pick_text(card, STATUS_SELECTORS) or None,
        status_hint=status_from_classes(card.get("class")),
        score=find_score(card),
        result_visibility=result_visibility(card),
    )


def parse_listing_html(html: str, day_key: str, base_url: str) -> List[MatchSummary]:
    soup = BeautifulSoup(html or "", "html.parser")
    rows = []
    dropped = 0
    for card in soup.select(CARD_SELECTOR):
        summary = parse_card(card, day_key, base_url)
        if summary is None:
            dropped += 1
            continue
        rows.append(summary)
    if dropped:
        logger.debug(f"{day_key}: dropped {dropped} cards without teams or link")
    return rows


def visible_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = soup.body or soup
    return body.get_text(" ", strip=True)


# =============================================================================
# Page driving
# =============================================================================

async def wait_for_stable_count(
    page,
    selector: str = CARD_SELECTOR,
    max_wait_ms: int = STABLE_MAX_WAIT_MS,
    settle_ms: int = STABLE_SETTLE_MS,
    poll_ms: int = STABLE_POLL_MS,
) -> int:
    """Poll the card count until it is non-zero and unchanged for ``settle_ms``."""
    last, stable_for, waited = -1, 0, 0
    while waited < max_wait_ms:
        try:
            count = await page.locator(selector).count()
        except PlaywrightError:
            count = 0
        if count > 0 and count == last:
            stable_for += poll_ms
        else:
            stable_for = 0
        last = count
        if count > 0 and stable_for >= settle_ms:
            return count
        await page.wait_for_timeout(poll_ms)
        waited += poll_ms
    return last


async def load_listing(page, url: str, settings: Settings) -> str:
    """Navigate, wait for the card list to settle, scroll once; return the HTML."""
    await page.goto(url, wait_until="domcontentloaded", timeout=settings.list_timeout_ms)
    await page.wait_for_selector(LISTING_READY_SELECTOR, timeout=READY_TIMEOUT_MS)
    await page.wait_for_timeout(900)
    await wait_for_stable_count(page)
    try:
        await page.mouse.wheel(0, 1400)
        await page.wait_for_timeout(700)
    except PlaywrightError as e:
        logger.debug(f"scroll failed on {url}: {e}")
    return await page.content()


async def harvest_day(page, day_key: str, url: str, settings: Settings, diagnostics: Diagnostics) -> List[MatchSummary]:
    logger.info(f"[LIST] {day_key} => {url}")
    diagnostics.write(f"list/{day_key}.url.txt", url + "\n")

    html = await load_listing(page, url, settings)

    await diagnostics.screenshot(page, f"list/{day_key}.png")
    diagnostics.write_html(f"list/{day_key}.html", html)

    text = visible_text(html)
    if detect_challenge(text):
        logger.warning(f"[WARN] Bot/challenge hints on {day_key} list page (runner may be blocked).")
        diagnostics.write(f"list/{day_key}.body.txt", text[:4000])

    rows = parse_listing_html(html, day_key, url)
    logger.info(f"[LIST] {day_key}: {len(rows)} matches")
    diagnostics.write(f"rows/raw_{day_key}.json", rows)
    return rows
