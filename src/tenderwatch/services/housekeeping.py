"""End-of-cycle maintenance: document expiry check and chat retention."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from tenderwatch.repos.chat_repo import ChatHistoryRepository
from tenderwatch.repos.document_repo import DocumentRepository
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class HousekeepingResult:
    docs_expiring: int = 0
    docs_expired: int = 0
    chat_messages_removed: int = 0


def run_housekeeping(
    session: Session,
    warning_days: int,
    retention_days: int,
    today: Optional[date] = None,
) -> HousekeepingResult:
    report = DocumentRepository(session).check_expiry(warning_days=warning_days, today=today)
    if report.expired or report.expiring:
        LOGGER.warning(
            "company documents need attention",
            extra={
                "expired": [d.name for d in report.expired],
                "expiring": [d.name for d in report.expiring],
            },
        )

    removed = ChatHistoryRepository(session).cleanup(retention_days)
    if removed:
        LOGGER.info("chat history pruned", extra={"removed": removed, "retention_days": retention_days})

    return HousekeepingResult(
        docs_expiring=len(report.expiring),
        docs_expired=len(report.expired),
        chat_messages_removed=removed,
    )
