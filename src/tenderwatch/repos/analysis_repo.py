# src/tenderwatch/repos/analysis_repo.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import Analysis


class AnalysisRepository:
    """One deep analysis per record; re-analysis replaces the previous row."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_for_record(self, record_id: int) -> Analysis | None:
        return self.session.execute(
            select(Analysis).where(Analysis.record_id == record_id)
        ).scalar_one_or_none()

    def upsert(self, record_id: int, **fields) -> Analysis:
        row = self.get_for_record(record_id)
        if row is None:
            row = Analysis(record_id=record_id, **fields)
            self.session.add(row)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
        self.session.commit()
        return row
