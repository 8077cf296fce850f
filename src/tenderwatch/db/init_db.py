from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from tenderwatch.db.schema import Base

# External-content FTS5 index over records; triggers keep it 1:1 with the rows.
FTS_DDL = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS records_fts USING fts5(
        description, agency_name, city,
        content='records', content_rowid='id',
        tokenize='unicode61 remove_diacritics 2'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS records_fts_ai AFTER INSERT ON records BEGIN
        INSERT INTO records_fts(rowid, description, agency_name, city)
        VALUES (new.id, new.description, new.agency_name, new.city);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS records_fts_ad AFTER DELETE ON records BEGIN
        INSERT INTO records_fts(records_fts, rowid, description, agency_name, city)
        VALUES ('delete', old.id, old.description, old.agency_name, old.city);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS records_fts_au AFTER UPDATE OF description, agency_name, city ON records BEGIN
        INSERT INTO records_fts(records_fts, rowid, description, agency_name, city)
        VALUES ('delete', old.id, old.description, old.agency_name, old.city);
        INSERT INTO records_fts(rowid, description, agency_name, city)
        VALUES (new.id, new.description, new.agency_name, new.city);
    END
    """,
)

FTS_DROP = (
    "DROP TRIGGER IF EXISTS records_fts_ai",
    "DROP TRIGGER IF EXISTS records_fts_ad",
    "DROP TRIGGER IF EXISTS records_fts_au",
    "DROP TABLE IF EXISTS records_fts",
)


def init_db(engine: Engine) -> None:
    """
    Create missing tables and the full-text index. Safe to call on every start:
    existing tables and rows are left alone.
    """
    with engine.begin() as conn:
        Base.metadata.create_all(bind=conn)
        if conn.dialect.name == "sqlite":
            for stmt in FTS_DDL:
                conn.exec_driver_sql(stmt)


def reset_db(engine: Engine) -> None:
    """Drop everything (index included) and recreate an empty schema."""
    with engine.begin() as conn:
        if conn.dialect.name == "sqlite":
            for stmt in FTS_DROP:
                conn.exec_driver_sql(stmt)
        Base.metadata.drop_all(bind=conn)
    init_db(engine)


def table_names(engine: Engine) -> set[str]:
    return set(inspect(engine).get_table_names())
