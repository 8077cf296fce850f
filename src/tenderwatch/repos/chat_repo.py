# src/tenderwatch/repos/chat_repo.py
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.orm import Session

from tenderwatch.db.schema import ChatMessage, utcnow


class ChatHistoryRepository:
    """Retention side of the chat history table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def cleanup(self, retention_days: int, now: datetime | None = None) -> int:
        """Delete messages older than `retention_days`; returns rows removed."""
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        result = self.session.execute(delete(ChatMessage).where(ChatMessage.created_at < cutoff))
        self.session.commit()
        return int(result.rowcount or 0)
