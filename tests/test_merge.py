import dataclasses
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from harvest.merge import merge_status, merge_with_existing, prefer_existing_url
from harvest.models import MatchRecord, MatchSummary, ResolvedMatch
from harvest.status import normalize_match
from harvest.textnorm import match_key

NOW = datetime(2025, 1, 10, 18, 0, tzinfo=timezone.utc)
DAY = "2025-01-10"


def _record(home="A", away="B", **kw) -> MatchRecord:
    base = dict(
        match_key=match_key(DAY, home, away),
        home_team=home,
        away_team=away,
        match_day=DAY,
        stream_url="https://cdn.example.com/live.m3u8",
        match_start=NOW,
        match_time="٠٨:٠٠ م",
        status_key="live",
        home_score=1,
        away_score=0,
    )
    base.update(kw)
    return MatchRecord(**base)


def test_merge_is_idempotent() -> None:
    batch = [
        _record(),
        _record("C", "D", status_key="upcoming", home_score=None, away_score=None, stream_url_2="https://p.tv/playerv2.php"),
        _record("E", "F", status_key="unknown", match_start=None, match_time="—", home_score=None, away_score=None),
    ]
    assert merge_with_existing(batch, batch, NOW) == batch


def test_strong_stream_url_is_never_replaced_by_weak_one() -> None:
    old = _record(stream_url="https://cdn/live.m3u8")
    new = _record(stream_url="https://listingsite.com/match/55")
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.stream_url == "https://cdn/live.m3u8"


def test_strong_new_url_replaces_old_one() -> None:
    old = _record(stream_url="https://www.bein-live.com/match/55/")
    new = _record(stream_url="https://cdn/new.m3u8")
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.stream_url == "https://cdn/new.m3u8"


def test_missing_auxiliary_urls_are_kept() -> None:
    old = _record(stream_url_2="https://p.tv/playerv2.php?match=match1&key=k")
    new = _record(stream_url_2=None)
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.stream_url_2 == "https://p.tv/playerv2.php?match=match1&key=k"


def test_prefer_existing_url() -> None:
    assert prefer_existing_url(None, None) is None
    assert prefer_existing_url("", "https://a/x.m3u8") == "https://a/x.m3u8"
    assert prefer_existing_url("https://weak.example/page", None) == "https://weak.example/page"
    assert prefer_existing_url("https://weak.example/page", "https://weak.example/other") == "https://weak.example/page"


def test_scores_are_backfilled() -> None:
    old = _record(home_score=2, away_score=1)
    new = _record(home_score=None, away_score=None)
    (merged,) = merge_with_existing([new], [old], NOW)
    assert (merged.home_score, merged.away_score) == (2, 1)


def test_fresh_scores_win() -> None:
    old = _record(home_score=2, away_score=1)
    new = _record(home_score=3, away_score=1)
    (merged,) = merge_with_existing([new], [old], NOW)
    assert (merged.home_score, merged.away_score) == (3, 1)


def test_missing_start_is_backfilled() -> None:
    old = _record(match_start=NOW, match_time="٠٨:٠٠ م")
    new = _record(match_start=None, match_time="—")
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.match_start == NOW
    assert merged.match_time == "٠٨:٠٠ م"


def test_nowish_start_survives_far_future_reschedule() -> None:
    old = _record(match_start=NOW - timedelta(minutes=30), match_time="old")
    new = _record(match_start=NOW + timedelta(hours=5), match_time="new")
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.match_start == NOW - timedelta(minutes=30)
    assert merged.match_time == "old"


def test_ordinary_reschedule_is_accepted() -> None:
    old = _record(match_start=NOW + timedelta(hours=3), match_time="old")
    new = _record(match_start=NOW + timedelta(hours=4), match_time="new")
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.match_start == NOW + timedelta(hours=4)
    assert merged.match_time == "new"


def test_status_guardrails() -> None:
    assert merge_status("unknown", "live") == "live"
    assert merge_status("upcoming", "finished") == "finished"
    assert merge_status("live", "upcoming") == "live"
    assert merge_status("finished", "live") == "finished"
    assert merge_status("unknown", "unknown") == "unknown"


def test_upcoming_merge_does_not_backfill_scores() -> None:
    old = _record(status_key="upcoming", home_score=None, away_score=None)
    new = _record(status_key="upcoming", home_score=None, away_score=None)
    (merged,) = merge_with_existing([new], [dataclasses.replace(old, home_score=0, away_score=0)], NOW)
    assert merged.home_score is None and merged.away_score is None


def test_regressed_status_keeps_old_status_and_scores() -> None:
    old = _record(status_key="live", home_score=1, away_score=1)
    new = _record(status_key="upcoming", home_score=None, away_score=None)
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.status_key == "live"
    assert (merged.home_score, merged.away_score) == (1, 1)


def test_new_records_are_inserted_and_vanished_ones_dropped() -> None:
    gone = _record("X", "Y")
    fresh = _record("C", "D")
    assert merge_with_existing([fresh], [gone], NOW) == [fresh]


def test_duplicate_fresh_keys_keep_the_last_record() -> None:
    first = _record(home_score=0)
    second = _record("B", "A", home_score=4)
    merged = merge_with_existing([first, second], [], NOW)
    assert merged == [second]


def test_tomorrow_fallback_does_not_swallow_todays_score() -> None:
    cairo = ZoneInfo("Africa/Cairo")
    run_now = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)

    listed_tomorrow = MatchSummary(day_key="tomorrow", home_team="A", away_team="B",
                                   detail_url="https://www.bein-live.com/match/a-b/")
    stored = normalize_match(ResolvedMatch(listed_tomorrow), {}, run_now - timedelta(days=1), cairo)
    assert (stored.status_key, stored.home_score) == ("upcoming", None)

    listed_today = dataclasses.replace(listed_tomorrow, day_key="today", score=(2, 1), result_visibility="visible")
    fresh = normalize_match(ResolvedMatch(listed_today), {}, run_now, cairo)
    assert fresh.match_key == stored.match_key
    assert fresh.status_key == "unknown"

    (merged,) = merge_with_existing([fresh], [stored], run_now)
    assert (merged.home_score, merged.away_score) == (2, 1)
    assert merged.status_key == "unknown"


def test_stored_upcoming_is_kept_without_fresh_scores() -> None:
    old = _record(status_key="upcoming", home_score=None, away_score=None)
    new = _record(status_key="unknown", home_score=None, away_score=None)
    (merged,) = merge_with_existing([new], [old], NOW)
    assert merged.status_key == "upcoming"
    assert (merged.home_score, merged.away_score) == (None, None)
