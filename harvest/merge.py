"""
Merge a fresh batch with the rows already stored for the same days.

Rows are matched on ``match_key`` only. The fresh batch decides which rows
exist; persisted rows only contribute values the guardrails keep:

- a strong stored stream URL is never replaced by a weak or missing one
- a missing start time is backfilled, and a "now-ish" stored start is kept
  when the fresh one suddenly jumps far into the future
- missing scores are backfilled unless the merged status is upcoming
- an unknown status keeps the stored one (but a fresh score is never dropped
  for a stored upcoming), and status never moves backwards
  along upcoming -> live -> finished
"""

import dataclasses
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from harvest.models import STREAM_SLOTS, MatchRecord
from harvest.scoring import is_weak_stream_url
from harvest.textnorm import STATUS_FINISHED, STATUS_LIVE, STATUS_UNKNOWN, STATUS_UPCOMING

NOWISH_BEFORE = timedelta(hours=6)
NOWISH_AFTER = timedelta(minutes=15)
FAR_FUTURE = timedelta(hours=2)

STATUS_RANK = {STATUS_UPCOMING: 0, STATUS_LIVE: 1, STATUS_FINISHED: 2}


def prefer_existing_url(new_url: Optional[str], old_url: Optional[str]) -> Optional[str]:
    if not new_url:
        return old_url or None
    if not old_url:
        return new_url
    if is_weak_stream_url(new_url) and not is_weak_stream_url(old_url):
        return old_url
    return new_url


def merge_status(new: str, old: str) -> str:
    if new == STATUS_UNKNOWN or new not in STATUS_RANK:
        return old if old in STATUS_RANK else new
    if old in STATUS_RANK and STATUS_RANK[new] < STATUS_RANK[old]:
        return old
    return new


def _looks_nowish(start: Optional[datetime], now: datetime) -> bool:
    return start is not None and now - NOWISH_BEFORE < start < now + NOWISH_AFTER


def _far_future(start: Optional[datetime], now: datetime) -> bool:
    return start is not None and start > now + FAR_FUTURE


def merge_record(new: MatchRecord, old: MatchRecord, now: datetime) -> MatchRecord:
    changes = {slot: prefer_existing_url(getattr(new, slot), getattr(old, slot)) for slot in STREAM_SLOTS}

    if new.match_start is None and old.match_start is not None:
        changes["match_start"] = old.match_start
        changes["match_time"] = old.match_time or new.match_time
    elif _looks_nowish(old.match_start, now) and _far_future(new.match_start, now):
        changes["match_start"] = old.match_start
        changes["match_time"] = old.match_time or new.match_time

    status = merge_status(new.status_key, old.status_key)
    if status == STATUS_UPCOMING and new.status_key != STATUS_UPCOMING and new.has_score:
        # A stored upcoming may be the tomorrow-tab fallback; fresh scores outrank it
        status = new.status_key
    changes["status_key"] = status

    if status == STATUS_UPCOMING:
        changes["home_score"] = None
        changes["away_score"] = None
    elif not new.has_score and old.has_score:
        changes["home_score"] = old.home_score
        changes["away_score"] = old.away_score

    return dataclasses.replace(new, **changes)


def merge_with_existing(
    fresh: Iterable[MatchRecord],
    existing: Iterable[MatchRecord],
    now: datetime,
) -> List[MatchRecord]:
    """
    Final rows to persist. One row per key in first-seen order; when the fresh
    batch repeats a key the later record wins. Stored rows without a fresh
    counterpart are not carried over.
    """
    stored: Dict[str, MatchRecord] = {}
    for row in existing:
        stored[row.match_key] = row

    merged: Dict[str, MatchRecord] = {}
    for record in fresh:
        old = stored.get(record.match_key)
        merged[record.match_key] = merge_record(record, old, now) if old else record
    return list(merged.values())
