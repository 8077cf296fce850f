# src/tenderwatch/repos/score_cache_repo.py
from __future__ import annotations

from sqlalchemy.orm import Session

from tenderwatch.db.schema import ScoreCacheEntry


class ScoreCacheRepository:
    """Write-once relevance cache keyed by (alert_id, record_id)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, alert_id: int, record_id: int) -> ScoreCacheEntry | None:
        return self.session.get(ScoreCacheEntry, (alert_id, record_id))

    def put(self, alert_id: int, record_id: int, score: int, rationale: str, source: str) -> ScoreCacheEntry:
        existing = self.get(alert_id, record_id)
        if existing is not None:
            return existing
        entry = ScoreCacheEntry(
            alert_id=alert_id,
            record_id=record_id,
            score=score,
            rationale=rationale,
            source=source,
        )
        self.session.add(entry)
        self.session.commit()
        return entry
