"""
Postgres persistence boundary.

The table is only ever written through one server-side function that deletes
the given days and inserts the new rows in a single transaction:

    SELECT refresh_match_stream_app(%s::date[], %s::jsonb)

The one read (``fetch_existing``) feeds the merge step.
"""

import logging
from typing import List, Sequence

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from harvest.models import ROW_COLUMNS, MatchRecord

logger = logging.getLogger("MatchStore")

CONNECT_TIMEOUT = 10


class StoreError(Exception):
    """A database read or refresh failed; nothing was committed."""


class MatchStore:
    def __init__(self, dsn: str, table: str = "match-stream-app", rpc: str = "refresh_match_stream_app",
                 connect=psycopg2.connect):
        self.dsn = dsn
        self.table = table
        self.rpc = rpc
        self._connect = connect

    def _conn(self):
        if not self.dsn:
            raise StoreError("DB_CONNECTION_STRING is not set")
        try:
            return self._connect(self.dsn, connect_timeout=CONNECT_TIMEOUT)
        except psycopg2.Error as e:
            raise StoreError(f"connect failed: {e}") from e

    def fetch_existing(self, days: Sequence[str]) -> List[MatchRecord]:
        query = sql.SQL("SELECT {cols} FROM {table} WHERE match_day = ANY(%s::date[])").format(
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in ROW_COLUMNS),
            table=sql.Identifier(self.table),
        )
        conn = self._conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, (list(days),))
                rows = cur.fetchall()
        except psycopg2.Error as e:
            conn.rollback()
            raise StoreError(f"read {self.table} failed: {e}") from e
        finally:
            conn.close()

        records = [MatchRecord.from_row(dict(r)) for r in rows]
        logger.info(f"[SYNC] Read {len(records)} existing rows for {', '.join(days)}.")
        return records

    def refresh_days(self, days: Sequence[str], records: Sequence[MatchRecord]) -> int:
        """Replace every row of ``days`` with ``records`` atomically."""
        payload = [r.to_row() for r in records]
        query = sql.SQL("SELECT {fn}(%s::date[], %s::jsonb)").format(fn=sql.Identifier(self.rpc))
        conn = self._conn()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (list(days), Json(payload)))
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise StoreError(f"{self.rpc} failed: {e}") from e
        finally:
            conn.close()

        logger.info(f"[SYNC] {self.rpc}: {len(payload)} rows across {len(days)} days.")
        return len(payload)
