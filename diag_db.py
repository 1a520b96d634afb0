"""
Store probe: reads today's rows and writes a summary under the diag directory.

    python diag_db.py

Useful when the frontend only shows kick-off times: a large
``suspects_future_no_score`` count means scores/status are not coming through.
"""

import logging
import sys
from datetime import datetime, timedelta, timezone

from harvest.config import Settings
from harvest.diagnostics import Diagnostics, configure_logging
from harvest.store import MatchStore, StoreError
from harvest.textnorm import day_for_key

logger = logging.getLogger("DiagDB")

LIVE_BEFORE = timedelta(hours=6)
LIVE_AFTER = timedelta(minutes=15)
FUTURE_MARGIN = timedelta(minutes=10)


def likely_live_by_time(start, now) -> bool:
    return start is not None and now - LIVE_BEFORE <= start <= now + LIVE_AFTER


def is_suspect(record, now) -> bool:
    """No start at all, or kick-off still well ahead while no score is stored."""
    if record.match_start is None:
        return True
    return record.match_start > now + FUTURE_MARGIN and not record.has_score


def summarize_day_rows(records, now):
    rows = []
    for r in records:
        row = r.to_row()
        row["_diag"] = {
            "has_score": r.has_score,
            "likely_live_by_time": likely_live_by_time(r.match_start, now),
            "future_minutes": None if r.match_start is None
            else round((r.match_start - now).total_seconds() / 60),
        }
        rows.append(row)

    suspects = [row for r, row in zip(records, rows) if is_suspect(r, now)]
    counts = {
        "total": len(records),
        "with_score": sum(1 for r in records if r.has_score),
        "likely_live_by_time": sum(1 for r in records if likely_live_by_time(r.match_start, now)),
        "suspects_future_no_score": len(suspects),
        "null_start": sum(1 for r in records if r.match_start is None),
    }
    return rows, suspects, counts


def diag(settings: Settings) -> int:
    diagnostics = Diagnostics(settings.diag_dir, enabled=True)
    diagnostics.touch("db")

    now = datetime.now(timezone.utc)
    today = day_for_key("today", now, settings.tz)
    store = MatchStore(settings.db_dsn, settings.table_name, settings.rpc_name)

    try:
        records = store.fetch_existing([today])
    except StoreError as e:
        logger.error(f"Read FAILED: {e}")
        diagnostics.write("db_error.txt", str(e))
        return 2

    rows, suspects, counts = summarize_day_rows(records, now)
    summary = {
        "ts": now.isoformat(),
        "source_today": today,
        "source_now": now.astimezone(settings.tz).isoformat(),
        "counts": counts,
    }
    diagnostics.write("db_today_rows.json", rows)
    diagnostics.write("db_today_suspects.json", suspects)
    diagnostics.write("db_summary.json", summary)
    logger.info(f"Wrote store diagnostics to {settings.diag_dir}: {counts}")
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(diag(Settings.from_env()))
