# src/tenderwatch/repos/document_repo.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import CompanyDocument


@dataclass(frozen=True)
class ExpiryReport:
    expiring: list[CompanyDocument] = field(default_factory=list)
    expired: list[CompanyDocument] = field(default_factory=list)


class DocumentRepository:
    """Read side of company compliance documents."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, kind: str, name: str, expires_on: date | None, issuer: str | None = None) -> CompanyDocument:
        doc = CompanyDocument(kind=kind, name=name, issuer=issuer, expires_on=expires_on)
        self.session.add(doc)
        self.session.commit()
        return doc

    def check_expiry(self, warning_days: int = 30, today: date | None = None) -> ExpiryReport:
        """
        expired: expires_on before today
        expiring: expires_on within [today, today + warning_days]
        Documents without a date never show up.
        """
        today = today or date.today()
        horizon = today + timedelta(days=warning_days)
        docs = self.session.execute(
            select(CompanyDocument)
            .where(CompanyDocument.expires_on.is_not(None), CompanyDocument.expires_on <= horizon)
            .order_by(CompanyDocument.expires_on)
        ).scalars()

        expiring: list[CompanyDocument] = []
        expired: list[CompanyDocument] = []
        for doc in docs:
            (expired if doc.expires_on < today else expiring).append(doc)
        return ExpiryReport(expiring=expiring, expired=expired)
