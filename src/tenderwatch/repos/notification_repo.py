# src/tenderwatch/repos/notification_repo.py
from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import SentNotification


class SentLogRepository:
    """
    Sent-log access. (alert_id, record_id, channel) is unique; recording the same
    triple twice is a no-op.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def sent_record_ids(self, alert_id: int, channel: str) -> set[int]:
        stmt = select(SentNotification.record_id).where(
            SentNotification.alert_id == alert_id,
            SentNotification.channel == channel,
        )
        return set(self.session.execute(stmt).scalars())

    def record_sent(self, alert_id: int, record_ids: Iterable[int], channel: str) -> int:
        ids = set(record_ids)
        already = self.sent_record_ids(alert_id, channel) & ids
        fresh = sorted(ids - already)
        for record_id in fresh:
            self.session.add(SentNotification(alert_id=alert_id, record_id=record_id, channel=channel))
        self.session.commit()
        return len(fresh)

    def count(self, alert_id: int | None = None) -> int:
        stmt = select(func.count()).select_from(SentNotification)
        if alert_id is not None:
            stmt = stmt.where(SentNotification.alert_id == alert_id)
        return int(self.session.execute(stmt).scalar_one())
