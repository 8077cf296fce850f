"""Database session helpers."""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tenderwatch.db.engine import build_engine
from tenderwatch.db.init_db import init_db


def build_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to `engine` (or the configured one), schema ensured."""
    engine = engine or build_engine()
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
