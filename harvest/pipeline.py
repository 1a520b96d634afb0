"""
Run orchestration.

One run walks the phases in order and touches the database exactly twice
(one read for the merge, one atomic refresh):

    harvest listings -> resolve primary -> harvest secondary -> resolve secondary
    -> normalize -> merge -> refresh

Browser work is async; concurrency only exists inside ``run_pool``.
"""

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from harvest.browser import BrowserSession, load_blocklist
from harvest.config import Settings
from harvest.diagnostics import Diagnostics
from harvest.listing import harvest_day
from harvest.merge import merge_with_existing
from harvest.models import MatchRecord, PrimaryResolution, ResolvedMatch, SecondaryListing, SecondaryStream
from harvest.pool import run_pool
from harvest.primary import resolve_primary
from harvest.primary import task_budget_s as primary_budget_s
from harvest.scoring import PRIMARY_VOCABULARY, SECONDARY_VOCABULARY, build_rules
from harvest.secondary import harvest_secondary_day, resolve_secondary
from harvest.secondary import task_budget_s as secondary_budget_s
from harvest.status import normalize_batch
from harvest.store import MatchStore, StoreError
from harvest.textnorm import match_key, rolling_days

logger = logging.getLogger("Pipeline")

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"


@dataclass
class RunReport:
    status: str = STATUS_EMPTY
    started_at: str = ""
    finished_at: str = ""
    days: List[str] = field(default_factory=list)
    harvested: int = 0
    secondary: int = 0
    normalized: int = 0
    persisted: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILED


async def _harvest_listings(session, settings: Settings, diagnostics: Diagnostics) -> List:
    out = []
    async with session.new_page() as page:
        for day_key, url in settings.primary_days():
            try:
                out.extend(await harvest_day(page, day_key, url, settings, diagnostics))
            except PlaywrightError as e:
                logger.error(f"[LIST] {day_key} failed: {e}")
                diagnostics.write(f"errors/{day_key}.txt", traceback.format_exc())
    return out


async def _harvest_secondary(session, settings: Settings, diagnostics: Diagnostics, now: datetime) -> List[SecondaryListing]:
    out = []
    async with session.new_page() as page:
        for day_key, url in settings.secondary_days():
            try:
                out.extend(await harvest_secondary_day(page, day_key, url, settings, diagnostics, now))
            except PlaywrightError as e:
                logger.error(f"[LIST] secondary {day_key} failed: {e}")
                diagnostics.write(f"secondary/errors_{day_key}.txt", traceback.format_exc())
    return out


async def collect(
    settings: Settings,
    session,
    diagnostics: Diagnostics,
    now: datetime,
) -> Tuple[List[MatchRecord], int, int]:
    """Browser phases plus normalization: (records, cards harvested, secondary streams)."""
    summaries = await _harvest_listings(session, settings, diagnostics)
    if not summaries:
        return [], 0, 0

    primary_rules = build_rules(PRIMARY_VOCABULARY, session.blocklist)
    secondary_rules = build_rules(SECONDARY_VOCABULARY, session.blocklist)

    async def _primary(page, summary, idx):
        tag = f"{summary.day_key}_{idx + 1}"
        logger.info(f"[DEEP] {summary.home_team} vs {summary.away_team}")
        return await resolve_primary(page, summary.detail_url, primary_rules, diagnostics,
                                     nav_timeout_ms=settings.deep_timeout_ms, tag=tag)

    resolutions = await run_pool(
        session.new_page, summaries, _primary,
        concurrency=settings.concurrency,
        task_timeout=primary_budget_s(settings.deep_timeout_ms),
        default=PrimaryResolution.degraded(),
        label="DEEP",
    )
    resolved = [ResolvedMatch(s, r) for s, r in zip(summaries, resolutions)]

    listings = await _harvest_secondary(session, settings, diagnostics, now)

    async def _secondary(page, listing, idx):
        return await resolve_secondary(page, listing, secondary_rules, diagnostics,
                                       nav_timeout_ms=settings.deep_timeout_ms)

    urls = await run_pool(
        session.new_page, listings, _secondary,
        concurrency=settings.concurrency,
        task_timeout=secondary_budget_s(settings.deep_timeout_ms),
        default=None,
        label="SERVER2",
    )
    streams = [
        SecondaryStream(match_key(item.match_day, item.home_team, item.away_team), url)
        for item, url in zip(listings, urls)
    ]
    found = sum(1 for s in streams if s.stream_url)
    logger.info(f"[SERVER2] {found}/{len(streams)} player links resolved.")

    records = normalize_batch(resolved, streams, now, settings.tz, rolling_days(now, settings.tz))
    return records, len(summaries), found


async def run_once(
    settings: Settings,
    store: Optional[MatchStore] = None,
    session_factory=BrowserSession,
    now: Optional[datetime] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> RunReport:
    now = now or datetime.now(timezone.utc)
    store = store or MatchStore(settings.db_dsn, settings.table_name, settings.rpc_name)
    diagnostics = diagnostics or Diagnostics(settings.diag_dir, settings.diag)
    diagnostics.touch("run")

    days = rolling_days(now, settings.tz)
    report = RunReport(started_at=now.isoformat(), days=days)

    try:
        blocklist = await asyncio.to_thread(load_blocklist, settings.blocklist_url)
        async with session_factory(settings, blocklist) as session:
            records, report.harvested, report.secondary = await collect(settings, session, diagnostics, now)
    except PlaywrightError as e:
        logger.error(f"[ERROR] Browser failure: {e}")
        diagnostics.write("errors/browser.txt", traceback.format_exc())
        return _finish(report, STATUS_FAILED, str(e))

    report.normalized = len(records)
    if not records:
        logger.warning("[WARN] No valid matches harvested; leaving stored rows untouched.")
        diagnostics.write("summary.json", {"note": "no valid rows", "days": days})
        return _finish(report, STATUS_EMPTY)

    try:
        existing = store.fetch_existing(days)
        merged = merge_with_existing(records, existing, now)
        diagnostics.write("final_rows.json", [r.to_row() for r in merged])
        logger.info(f"[SYNC] Refreshing {', '.join(days)} via {settings.rpc_name}")
        report.persisted = store.refresh_days(days, merged)
    except StoreError as e:
        logger.error(f"[ERROR] {e}")
        diagnostics.write("errors/store.txt", traceback.format_exc())
        return _finish(report, STATUS_FAILED, str(e))

    _finish(report, STATUS_OK)
    diagnostics.write("summary.json", report)
    return report


def _finish(report: RunReport, status: str, error: Optional[str] = None) -> RunReport:
    report.status = status
    report.error = error
    report.finished_at = datetime.now(timezone.utc).isoformat()
    logger.info(f"Run {status}: harvested={report.harvested} normalized={report.normalized} "
                f"persisted={report.persisted}")
    return report
