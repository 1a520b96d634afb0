from datetime import date, datetime, timezone
from unittest import mock

import psycopg2
import pytest
from psycopg2.extras import Json

from harvest.models import MatchRecord
from harvest.store import MatchStore, StoreError

DAYS = ["2025-01-09", "2025-01-10", "2025-01-11"]


def _store(rows=(), execute_error=None):
    cur = mock.MagicMock()
    cur.fetchall.return_value = list(rows)
    if execute_error:
        cur.execute.side_effect = execute_error
    conn = mock.MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    connect = mock.MagicMock(return_value=conn)
    return MatchStore("postgresql://u@h/db", connect=connect), connect, conn, cur


def test_fetch_existing_maps_rows_to_records() -> None:
    row = {
        "match_key": "", "home_team": "A", "away_team": "B", "home_logo": None, "away_logo": None,
        "stream_url": "https://cdn/live.m3u8", "stream_url_2": None, "stream_url_3": None,
        "stream_url_4": None, "stream_url_5": None, "match_day": date(2025, 1, 10),
        "match_start": datetime(2025, 1, 10, 18, 0, tzinfo=timezone.utc), "match_time": None,
        "home_score": 2, "away_score": "1", "status_key": None,
    }
    store, connect, conn, cur = _store([row])

    (record,) = store.fetch_existing(DAYS)

    connect.assert_called_once_with("postgresql://u@h/db", connect_timeout=10)
    assert cur.execute.call_args[0][1] == (DAYS,)
    assert record.match_key == "2025-01-10||a__b"
    assert record.match_day == "2025-01-10"
    assert record.match_time == "—"
    assert record.home_score == 2
    assert record.away_score is None
    assert record.status_key == "unknown"
    conn.close.assert_called_once()


def test_fetch_failure_raises_store_error() -> None:
    store, _, conn, _ = _store(execute_error=psycopg2.OperationalError("relation does not exist"))
    with pytest.raises(StoreError):
        store.fetch_existing(DAYS)
    conn.close.assert_called_once()


def test_refresh_days_is_one_call_in_one_transaction() -> None:
    store, _, conn, cur = _store()
    record = MatchRecord("2025-01-10||a__b", "A", "B", "2025-01-10",
                         match_start=datetime(2025, 1, 10, 18, 0, tzinfo=timezone.utc))

    assert store.refresh_days(DAYS, [record]) == 1

    assert cur.execute.call_count == 1
    days, payload = cur.execute.call_args[0][1]
    assert days == DAYS
    assert isinstance(payload, Json)
    assert payload.adapted[0]["match_start"] == "2025-01-10T18:00:00+00:00"
    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()


def test_refresh_failure_rolls_back() -> None:
    store, _, conn, _ = _store(execute_error=psycopg2.InternalError("boom"))
    with pytest.raises(StoreError):
        store.refresh_days(DAYS, [])
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_missing_dsn_is_a_store_error() -> None:
    with pytest.raises(StoreError):
        MatchStore("").fetch_existing(DAYS)


def test_connect_failure_is_a_store_error() -> None:
    connect = mock.MagicMock(side_effect=psycopg2.OperationalError("timeout"))
    with pytest.raises(StoreError):
        MatchStore("postgresql://u@h/db", connect=connect).refresh_days(DAYS, [])
