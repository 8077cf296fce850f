# src/tenderwatch/repos/runs_repo.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import CollectionRun


class CollectionRunRepository:
    """
    Append-only audit log of collection passes (one row per axis, success or failure).
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, run: CollectionRun) -> CollectionRun:
        self.session.add(run)
        self.session.commit()
        return run

    def list_recent(self, limit: int = 20) -> list[CollectionRun]:
        stmt = select(CollectionRun).order_by(CollectionRun.started_at.desc(), CollectionRun.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def last_success(self) -> CollectionRun | None:
        stmt = (
            select(CollectionRun)
            .where(CollectionRun.success.is_(True))
            .order_by(CollectionRun.finished_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()
