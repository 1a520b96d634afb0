"""
Deep resolver for the primary provider.

One call visits one match detail page inside its own session and returns a
``PrimaryResolution``: the best scoring stream candidate plus the status and
score read from the page. Everything the page tries to reach is collected
(network requests, popups, new tabs, frames) together with the explicit
player links found in the DOM.
"""

import logging
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from harvest.browser import CandidateCollector
from harvest.diagnostics import Diagnostics
from harvest.listing import find_score, pick_text
from harvest.models import PrimaryResolution
from harvest.scoring import Rule, normalize_url, pick_best_url
from harvest.textnorm import status_from_classes

logger = logging.getLogger("PrimaryResolver")

LOAD_SETTLE_MS = 1400
OBSERVE_MS = 800
SERVER_TAB_TIMEOUT_MS = 2500
# page.content() reads and DOM parsing between the waits
BUDGET_SLACK_MS = 5000

DETAIL_STATUS_SELECTORS = (".MT_Stat", ".MT_Status", ".match-status", ".MatchStatus", ".RS-status", ".status")
DETAIL_STATUS_HOSTS = (".MT_Stat", ".MT_Status", ".match-status", ".MatchStatus")
SERVER_TAB_SELECTOR = ".video-serv a, .server-tab, .video-serv button"


def task_budget_s(nav_timeout_ms: int) -> float:
    """Upper bound for one ``resolve_primary``: navigation plus its fixed waits."""
    return (nav_timeout_ms + LOAD_SETTLE_MS + SERVER_TAB_TIMEOUT_MS + OBSERVE_MS + BUDGET_SLACK_MS) / 1000.0


def extract_detail_meta(html: str) -> Tuple[Optional[str], Optional[str], Optional[tuple]]:
    """
    (status_text, status_hint, score) as currently rendered on a detail page.

    Only the page's own card (the first ``.AY_Match``) is read; related-match
    cards further down the page never contribute. Without a card the whole
    body is used.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    card = soup.select_one(".AY_Match")
    scope = card if card is not None else soup
    status_text = pick_text(scope, DETAIL_STATUS_SELECTORS) or None

    hint = status_from_classes(card.get("class")) if card is not None else None
    if not hint:
        for sel in DETAIL_STATUS_HOSTS:
            el = scope.select_one(sel)
            hint = status_from_classes(el.get("class")) if el is not None else None
            if hint:
                break

    return status_text, hint, find_score(scope)


def collect_dom_candidates(html: str, base_url: str) -> List[str]:
    """Server links, iframe sources and media sources, absolute and in document order."""
    soup = BeautifulSoup(html or "", "html.parser")
    raw = []
    for a in soup.select(".video-serv a[href]"):
        raw.append(a.get("href"))
    for frame in soup.select("iframe"):
        raw.append(frame.get("src"))
        raw.append(frame.get("data-src"))
    for media in soup.select("video[src], source[src]"):
        raw.append(media.get("src"))

    out = []
    for value in raw:
        url = normalize_url(value, base_url)
        if url and url not in out:
            out.append(url)
    return out


async def activate_server_tab(page, collector: CandidateCollector) -> None:
    """Record the first server tab's href, or click it so the player loads."""
    tab = page.locator(SERVER_TAB_SELECTOR).first
    try:
        if not await tab.count():
            return
        href = await tab.get_attribute("href")
        url = normalize_url(href, page.url)
        if url:
            collector.add(url)
            return
        await tab.click(timeout=SERVER_TAB_TIMEOUT_MS)
    except PlaywrightError as e:
        logger.debug(f"server tab on {page.url}: {e}")


async def read_meta(page):
    try:
        return extract_detail_meta(await page.content())
    except PlaywrightError:
        return None, None, None


def prefer_later(first, second):
    return tuple(b if b is not None else a for a, b in zip(first, second))


async def resolve_primary(
    page,
    detail_url: str,
    rules: Tuple[Rule, ...],
    diagnostics: Diagnostics,
    nav_timeout_ms: int = 45000,
    tag: str = "",
) -> PrimaryResolution:
    try:
        async with CandidateCollector(page) as collector:
            await page.goto(detail_url, wait_until="domcontentloaded", timeout=nav_timeout_ms)
            await page.wait_for_timeout(LOAD_SETTLE_MS)
            first = await read_meta(page)

            await activate_server_tab(page, collector)
            await page.wait_for_timeout(OBSERVE_MS)
            second = await read_meta(page)

            collector.extend(f.url for f in page.frames)
            collector.extend(collect_dom_candidates(await page.content(), page.url))
            candidates = tuple(collector.urls)
    except PlaywrightError as e:
        logger.warning(f"[DEEP] {tag} failed on {detail_url}: {e}")
        return PrimaryResolution.degraded()

    status_text, status_hint, score = prefer_later(first, second)
    best = pick_best_url(candidates, rules, page_url=detail_url)
    logger.debug(f"[DEEP] {tag} {len(candidates)} candidates, best={best}")
    if tag:
        diagnostics.write(f"deep/{tag}.json", {"url": detail_url, "best": best, "candidates": list(candidates)})

    return PrimaryResolution(
        stream_url=best,
        status_text=status_text,
        status_hint=status_hint,
        score=score,
        candidates=candidates,
    )
