from psycopg2 import sql

from setup_db import CREATE_FUNCTION, schema_statements


def test_refresh_upserts_before_pruning_vanished_keys() -> None:
    body = CREATE_FUNCTION
    upsert = body.index("ON CONFLICT (match_key) DO UPDATE")
    prune = body.index("DELETE FROM {table}")
    assert upsert < prune
    assert "match_day = ANY(days)" in body[prune:]
    assert "match_key <> ALL(" in body[prune:]


def test_schema_statements_are_composed() -> None:
    statements = schema_statements("match-stream-app", "refresh_match_stream_app")
    assert len(statements) == 3
    assert all(isinstance(s, sql.Composed) for s in statements)
