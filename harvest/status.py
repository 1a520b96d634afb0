"""
Status and score normalization.

``resolve_status`` is the whole lifecycle decision as one pure function.
Precedence, first hit wins:

1. markup hint (detail page, then listing card)
2. status text (detail page, then listing card)
3. day fallback: yesterday -> finished, tomorrow -> upcoming, today stays unknown

``normalize_match`` then turns one resolved card into the persisted
``MatchRecord``; upcoming records never carry scores.
"""

import logging
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

from harvest.models import MatchRecord, ResolvedMatch, ScorePair, SecondaryStream
from harvest.scoring import is_player_url
from harvest.textnorm import (
    STATUS_FINISHED,
    STATUS_UNKNOWN,
    STATUS_UPCOMING,
    day_for_key,
    display_time,
    local_day,
    match_key,
    parse_start,
    status_from_text,
)

logger = logging.getLogger("Normalizer")

DAY_FALLBACK = {"yesterday": STATUS_FINISHED, "tomorrow": STATUS_UPCOMING}
NO_TIME = "—"


def resolve_status(
    listing_hint: Optional[str] = None,
    detail_hint: Optional[str] = None,
    listing_text: Optional[str] = None,
    detail_text: Optional[str] = None,
    day_key: str = "today",
) -> str:
    for hint in (detail_hint, listing_hint):
        if hint and hint != STATUS_UNKNOWN:
            return hint
    for text in (detail_text, listing_text):
        status = status_from_text(text)
        if status != STATUS_UNKNOWN:
            return status
    return DAY_FALLBACK.get(day_key, STATUS_UNKNOWN)


def resolve_score(resolved: ResolvedMatch, status: str) -> Optional[ScorePair]:
    if status == STATUS_UPCOMING:
        return None
    if resolved.resolution.score is not None:
        return resolved.resolution.score

    summary = resolved.summary
    if (
        status == STATUS_UNKNOWN
        and summary.result_visibility == "hidden"
        and summary.score == (0, 0)
    ):
        # Hidden 0-0 result block is a placeholder
        return None
    return summary.score


def match_time_label(status: str, time_text: Optional[str], start: Optional[datetime], tz: tzinfo) -> str:
    if status == STATUS_UPCOMING:
        return time_text or display_time(start, tz) or NO_TIME
    return display_time(start, tz) or time_text or NO_TIME


def normalize_match(
    resolved: ResolvedMatch,
    secondary: Dict[str, str],
    now: datetime,
    tz: tzinfo,
) -> Optional[MatchRecord]:
    """One persisted record, or None when identity fields are missing."""
    s, r = resolved.summary, resolved.resolution

    start = parse_start(s.data_start, tz)
    match_day = local_day(start, tz) or day_for_key(s.day_key, now, tz)
    key = match_key(match_day, s.home_team, s.away_team)

    status = resolve_status(
        listing_hint=s.status_hint,
        detail_hint=r.status_hint,
        listing_text=s.status_text,
        detail_text=r.status_text,
        day_key=s.day_key,
    )
    score = resolve_score(resolved, status)

    stream_url = r.stream_url or s.detail_url
    server2 = secondary.get(key)
    if server2 and not is_player_url(server2):
        server2 = None

    if not (key and match_day and s.home_team and s.away_team and stream_url):
        return None

    return MatchRecord(
        match_key=key,
        home_team=s.home_team,
        away_team=s.away_team,
        match_day=match_day,
        home_logo=s.home_logo,
        away_logo=s.away_logo,
        stream_url=stream_url,
        stream_url_2=server2,
        match_start=start,
        match_time=match_time_label(status, s.time_text, start, tz),
        home_score=score[0] if score else None,
        away_score=score[1] if score else None,
        status_key=status,
    )


def secondary_map(streams: Iterable[SecondaryStream]) -> Dict[str, str]:
    """match_key -> player URL; the first usable stream per key wins."""
    out: Dict[str, str] = {}
    for stream in streams:
        if not stream.stream_url or not is_player_url(stream.stream_url):
            continue
        out.setdefault(stream.match_key, stream.stream_url)
    return out


def normalize_batch(
    resolved: Sequence[ResolvedMatch],
    secondary_streams: Iterable[SecondaryStream],
    now: datetime,
    tz: tzinfo,
    days: Optional[Sequence[str]] = None,
) -> List[MatchRecord]:
    """Normalize every card; drop invalid ones and those outside ``days``."""
    streams = secondary_map(secondary_streams)
    allowed = set(days) if days else None

    out = []
    dropped = 0
    for item in resolved:
        record = normalize_match(item, streams, now, tz)
        if record is None or (allowed is not None and record.match_day not in allowed):
            dropped += 1
            continue
        out.append(record)
    if dropped:
        logger.info(f"Dropped {dropped} records (missing identity or outside rolling days).")
    return out
