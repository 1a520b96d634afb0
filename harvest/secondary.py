"""
Secondary provider: day listing plus per-match player resolution.

The secondary site links each card to a wrapper page (``/hard/...html?match=N``)
that is not embeddable; the real player lives at ``/playerv2.php`` and its URL
is usually built client side. Resolution therefore polls the page for a player
URL and, failing that, rebuilds it from the host and key found in inline
scripts. Only the exact player shape is ever returned.
"""

import logging
import re
import time
from datetime import datetime, tzinfo
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, quote, urlsplit

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from harvest.browser import CandidateCollector
from harvest.config import CARD_SELECTOR, SECONDARY_WRAPPER_HOST, Settings
from harvest.diagnostics import Diagnostics
from harvest.listing import load_listing, to_abs
from harvest.models import SecondaryListing
from harvest.scoring import Rule, is_player_url, is_rejected, normalize_url, pick_best_url
from harvest.textnorm import day_for_key, local_day, normalize_digits, parse_start

logger = logging.getLogger("SecondaryResolver")

POLL_MS = 8000
STEP_MS = 500
# Frame, DOM and script reads on every poll step
BUDGET_SLACK_MS = 5000

LINK_PREFERENCE = (
    f'a[href*="{SECONDARY_WRAPPER_HOST}/hard/"]',
    'a[href*="/hard/"]',
    'a[href*="playerv2.php"]',
    "a[href]",
)

_INLINE_PLAYER_RE = re.compile(r"https://[^\"'`\s]+/playerv2\.php\?[^\"'`\s]+", re.IGNORECASE)
_HOST_RES = (
    re.compile(r"https://([^/\s\"'`]+)/playerv2\.php", re.IGNORECASE),
    re.compile(r"playerurl\s*[:=]\s*[\"'`]?https://([^/\s\"'`]+)/playerv2\.php", re.IGNORECASE),
    re.compile(r"src\s*[:=]\s*[\"'`]?https://([^/\s\"'`]+)/playerv2\.php", re.IGNORECASE),
)
_KEY_RES = (
    re.compile(r"\bkey\s*=\s*[\"'`]?([A-Za-z0-9]+)\b", re.IGNORECASE),
    re.compile(r"\bkey\s*:\s*[\"'`]?([A-Za-z0-9]+)\b", re.IGNORECASE),
    re.compile(r"&key=([^&\"'`\s]+)", re.IGNORECASE),
)
_MATCH_ID_RE = re.compile(r"^\d{1,5}$")
PLAYER_TEMPLATE = "https://{host}/playerv2.php?match=match{match_id}&key={key}"

SCRIPTS_JS = "() => Array.from(document.scripts).map((s) => s.textContent || '').join('\\n')"


def task_budget_s(nav_timeout_ms: int, poll_ms: int = POLL_MS, step_ms: int = STEP_MS) -> float:
    """Upper bound for one ``resolve_secondary``: navigation plus the full poll window."""
    return (nav_timeout_ms + poll_ms + step_ms + BUDGET_SLACK_MS) / 1000.0


# =============================================================================
# Listing
# =============================================================================

def parse_secondary_listing_html(
    html: str, day_key: str, base_url: str, now: datetime, tz: tzinfo
) -> List[SecondaryListing]:
    soup = BeautifulSoup(html or "", "html.parser")
    fallback_day = day_for_key(day_key, now, tz)
    out = []
    for card in soup.select(CARD_SELECTOR):
        teams = [t.get_text(strip=True) for t in card.select(".TM_Name")]
        teams = [t for t in teams if t]
        if len(teams) < 2:
            continue

        link = None
        for sel in LINK_PREFERENCE:
            link = card.select_one(sel)
            if link is not None:
                break
        href = to_abs((link.get("href") or "").strip(), base_url) if link is not None else ""
        if not href:
            continue

        time_el = card.select_one(".MT_Time")
        data_start = (time_el.get("data-start") or "").strip() if time_el is not None else ""
        match_day = local_day(parse_start(data_start, tz), tz) or fallback_day

        out.append(SecondaryListing(
            day_key=day_key,
            match_day=match_day,
            home_team=teams[0],
            away_team=teams[1],
            page_url=href,
            data_start=data_start or None,
        ))
    return out


async def harvest_secondary_day(
    page, day_key: str, url: str, settings: Settings, diagnostics: Diagnostics, now: datetime
) -> List[SecondaryListing]:
    logger.info(f"[LIST] secondary {day_key} => {url}")
    html = await load_listing(page, url, settings)

    await diagnostics.screenshot(page, f"secondary/list_{day_key}.png")
    diagnostics.write_html(f"secondary/list_{day_key}.html", html)

    rows = parse_secondary_listing_html(html, day_key, url, now, settings.tz)
    logger.info(f"[LIST] secondary {day_key}: {len(rows)} items")
    diagnostics.write(f"secondary/raw_{day_key}.json", rows)
    return rows


# =============================================================================
# Player URL derivation
# =============================================================================

def _first_group(patterns, text: str) -> str:
    for rx in patterns:
        m = rx.search(text)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return ""


def derive_player_url(page_url: str, scripts_text: str) -> Optional[str]:
    """
    Rebuild ``https://<host>/playerv2.php?match=match<id>&key=<key>``.

    ``id`` comes from the page's ``match`` query parameter (``7`` or
    ``match7``); host and key come from inline script text. Returns None when
    any part is missing.
    """
    if not page_url:
        return None
    try:
        parts = urlsplit(page_url)
    except ValueError:
        return None
    if "playerv2.php" in parts.path.lower():
        return page_url

    match_id = normalize_digits((parse_qs(parts.query).get("match") or [""])[0]).strip()
    match_id = re.sub(r"^match", "", match_id, flags=re.IGNORECASE)
    if not _MATCH_ID_RE.match(match_id) or not scripts_text:
        return None

    host = _first_group(_HOST_RES, scripts_text)
    key = _first_group(_KEY_RES, scripts_text)
    if not host or not key:
        return None
    return PLAYER_TEMPLATE.format(host=host, match_id=quote(match_id, safe=""), key=quote(key, safe=""))


def collect_page_urls(html: str, base_url: str) -> List[str]:
    """iframe sources, links and any player URL spelled out in inline scripts."""
    soup = BeautifulSoup(html or "", "html.parser")
    raw = []
    for frame in soup.select("iframe[src], iframe[data-src]"):
        raw.append(frame.get("src"))
        raw.append(frame.get("data-src"))
    for a in soup.select("a[href]"):
        raw.append(a.get("href"))
    scripts = "\n".join(s.get_text() for s in soup.find_all("script"))
    m = _INLINE_PLAYER_RE.search(scripts)
    if m:
        raw.append(m.group(0))

    out = []
    for value in raw:
        url = normalize_url(value, base_url)
        if url and url not in out:
            out.append(url)
    return out


def choose_player_url(candidates, rules: Tuple[Rule, ...], page_url: str) -> Optional[str]:
    """Best player-shaped candidate that is not junk, an ad, or the page itself."""
    players = []
    for c in candidates:
        url = normalize_url(c, page_url)
        if not url or url == page_url or not is_player_url(url) or url in players:
            continue
        if is_rejected(url, rules, page_url):
            continue
        players.append(url)
    if not players:
        return None
    return pick_best_url(players, rules, page_url=page_url) or players[0]


# =============================================================================
# Resolver
# =============================================================================

async def _scripts_text(page) -> str:
    try:
        return await page.evaluate(SCRIPTS_JS) or ""
    except PlaywrightError:
        return ""


async def _poll_once(page, page_url: str, collector: CandidateCollector) -> Optional[str]:
    for frame in page.frames:
        collector.add(frame.url)
        if is_player_url(frame.url):
            return frame.url

    try:
        html = await page.content()
    except PlaywrightError:
        html = ""
    for url in collect_page_urls(html, page_url):
        collector.add(url)
        if is_player_url(url):
            return url

    derived = derive_player_url(page.url, await _scripts_text(page))
    if derived and is_player_url(derived):
        collector.add(derived)
        return derived

    for url in collector.urls:
        url = normalize_url(url, page_url)
        if url and is_player_url(url):
            return url
    return None


async def resolve_secondary(
    page,
    listing: SecondaryListing,
    rules: Tuple[Rule, ...],
    diagnostics: Diagnostics,
    nav_timeout_ms: int = 45000,
    poll_ms: int = POLL_MS,
    step_ms: int = STEP_MS,
) -> Optional[str]:
    page_url = listing.page_url
    if not page_url:
        return None

    try:
        async with CandidateCollector(page) as collector:
            await page.goto(page_url, wait_until="domcontentloaded", timeout=nav_timeout_ms)

            waited = 0
            while waited < poll_ms:
                found = await _poll_once(page, page_url, collector)
                if found:
                    logger.debug(f"[DEEP] secondary player for {listing.home_team} vs {listing.away_team}: {found}")
                    return found
                await page.wait_for_timeout(step_ms)
                waited += step_ms

            best = choose_player_url(collector.urls, rules, page_url)
            if diagnostics.enabled:
                diagnostics.write(f"secondary/resolve_{int(time.time() * 1000)}.json", {
                    "page_url": page_url,
                    "final_url": page.url,
                    "candidates": collector.urls[:120],
                    "best": best,
                })
                await diagnostics.screenshot(page, f"secondary/resolve_{int(time.time() * 1000)}.png")
    except PlaywrightError as e:
        logger.warning(f"[DEEP] secondary failed on {page_url}: {e}")
        return None

    if best is None:
        logger.debug(f"[DEEP] no player for {page_url}")
    return best
