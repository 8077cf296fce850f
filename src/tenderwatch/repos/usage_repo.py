# src/tenderwatch/repos/usage_repo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import UsageEvent


def day_key(d: date | None = None) -> str:
    return (d or date.today()).isoformat()


@dataclass(frozen=True)
class UsageSummary:
    day: str
    classifications: int
    analyses: int
    cost_usd: float


class UsageRepository:
    """Append-only ledger of paid LLM calls, queried per calendar day for quotas."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record(
        self,
        kind: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
        record_id: int | None = None,
        day: str | None = None,
    ) -> UsageEvent:
        event = UsageEvent(
            kind=kind,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
            record_id=record_id,
            day=day or day_key(),
        )
        self.session.add(event)
        self.session.commit()
        return event

    def count_for_day(self, kind: str, day: str | None = None) -> int:
        stmt = (
            select(func.count())
            .select_from(UsageEvent)
            .where(UsageEvent.kind == kind, UsageEvent.day == (day or day_key()))
        )
        return int(self.session.execute(stmt).scalar_one())

    def summary(self, day: str | None = None) -> UsageSummary:
        day = day or day_key()
        cost = self.session.execute(
            select(func.coalesce(func.sum(UsageEvent.cost_usd), 0.0)).where(UsageEvent.day == day)
        ).scalar_one()
        return UsageSummary(
            day=day,
            classifications=self.count_for_day("classification", day),
            analyses=self.count_for_day("analysis", day),
            cost_usd=float(cost),
        )
