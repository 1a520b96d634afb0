"""
Creates the match table, its day index and the refresh function.

Safe to run repeatedly. Reads DB_CONNECTION_STRING / TABLE_NAME / RPC_NAME
from the environment like the service does.
"""

import logging
import sys

import psycopg2
from psycopg2 import sql

from harvest.config import Settings
from harvest.diagnostics import configure_logging

logger = logging.getLogger("SetupDB")

# (column, type) in row order; match_key is the durable identity
COLUMNS = (
    ("match_key", "TEXT"),
    ("home_team", "TEXT"),
    ("away_team", "TEXT"),
    ("home_logo", "TEXT"),
    ("away_logo", "TEXT"),
    ("stream_url", "TEXT"),
    ("stream_url_2", "TEXT"),
    ("stream_url_3", "TEXT"),
    ("stream_url_4", "TEXT"),
    ("stream_url_5", "TEXT"),
    ("match_day", "DATE"),
    ("match_start", "TIMESTAMPTZ"),
    ("match_time", "TEXT"),
    ("home_score", "INTEGER"),
    ("away_score", "INTEGER"),
    ("status_key", "TEXT"),
)

CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    id SERIAL PRIMARY KEY,
    match_key TEXT NOT NULL UNIQUE,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    home_logo TEXT,
    away_logo TEXT,
    stream_url TEXT,
    stream_url_2 TEXT,
    stream_url_3 TEXT,
    stream_url_4 TEXT,
    stream_url_5 TEXT,
    match_day DATE NOT NULL,
    match_start TIMESTAMPTZ,
    match_time TEXT,
    home_score INTEGER,
    away_score INTEGER,
    status_key TEXT NOT NULL DEFAULT 'unknown',
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
"""

CREATE_INDEX = "CREATE INDEX IF NOT EXISTS {index} ON {table} (match_day, match_start, id);"

CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION {fn}(days date[], rows jsonb)
RETURNS integer
LANGUAGE plpgsql
AS $$
DECLARE
    upserted integer;
BEGIN
    INSERT INTO {table} ({cols})
    SELECT {cols}
    FROM jsonb_to_recordset(rows) AS r({typed})
    ON CONFLICT (match_key) DO UPDATE SET {updates}, updated_at = NOW();

    GET DIAGNOSTICS upserted = ROW_COUNT;

    -- Rows of these days that are gone from the batch; kept keys keep their id
    DELETE FROM {table}
    WHERE match_day = ANY(days)
      AND match_key <> ALL(ARRAY(SELECT e.value ->> 'match_key' FROM jsonb_array_elements(rows) AS e(value)));

    RETURN upserted;
END;
$$;
"""


def schema_statements(table: str, rpc: str):
    """The three DDL statements, composed with quoted identifiers."""
    t = sql.Identifier(table)
    cols = sql.SQL(", ").join(sql.Identifier(c) for c, _ in COLUMNS)
    typed = sql.SQL(", ").join(sql.SQL("{} {}").format(sql.Identifier(c), sql.SQL(ty)) for c, ty in COLUMNS)
    updates = sql.SQL(", ").join(
        sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c, _ in COLUMNS if c != "match_key"
    )
    return (
        sql.SQL(CREATE_TABLE).format(table=t),
        sql.SQL(CREATE_INDEX).format(index=sql.Identifier(f"{table}_day_start_idx"), table=t),
        sql.SQL(CREATE_FUNCTION).format(fn=sql.Identifier(rpc), table=t, cols=cols, typed=typed, updates=updates),
    )


def setup(settings: Settings) -> bool:
    if not settings.db_dsn:
        logger.error("DB_CONNECTION_STRING is not set.")
        return False
    try:
        logger.info("Connecting to DB...")
        conn = psycopg2.connect(settings.db_dsn, connect_timeout=10)
    except psycopg2.Error as e:
        logger.error(f"FATAL: {e}")
        return False

    try:
        with conn.cursor() as cur:
            for stmt in schema_statements(settings.table_name, settings.rpc_name):
                cur.execute(stmt)
        conn.commit()
        logger.info(f"Setup complete: {settings.table_name} + {settings.rpc_name}().")
        return True
    except psycopg2.Error as e:
        conn.rollback()
        logger.error(f"Setup FAILED: {e}")
        return False
    finally:
        conn.close()


if __name__ == "__main__":
    configure_logging()
    sys.exit(0 if setup(Settings.from_env()) else 1)
