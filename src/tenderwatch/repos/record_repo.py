# src/tenderwatch/repos/record_repo.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from tenderwatch.db.schema import Record, utcnow

UpsertOutcome = Literal["new", "updated"]

# external_id identifies the row; these are refreshed on every re-ingestion
MUTABLE_FIELDS = (
    "description",
    "category_code",
    "category_name",
    "region",
    "city",
    "agency_name",
    "agency_tax_id",
    "estimated_value",
    "published_at",
    "opening_at",
    "closing_at",
    "source_url",
    "raw_json",
)


@dataclass(frozen=True)
class UpsertCounts:
    new: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.new + self.updated


@dataclass(frozen=True)
class RecordStats:
    total: int
    matched: int
    analyzed: int
    by_region: list[tuple[str, int]] = field(default_factory=list)
    by_category: list[tuple[str, int]] = field(default_factory=list)


class RecordStore:
    """
    DB access layer for Record.

    Operates on an injected Session. Each upsert commits so a failure later in an
    axis never loses the rows already stored. The FTS index follows the rows
    through triggers, nothing to do here.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_external_id(self, external_id: str) -> Record | None:
        return self.session.execute(
            select(Record).where(Record.external_id == external_id)
        ).scalar_one_or_none()

    def get(self, record_id: int) -> Record | None:
        return self.session.get(Record, record_id)

    def upsert(self, values: dict[str, Any]) -> UpsertOutcome:
        """Insert or refresh by external_id. First call -> "new", later calls -> "updated"."""
        external_id = values["external_id"]
        existing = self.get_by_external_id(external_id)

        if existing is None:
            data = {k: values.get(k) for k in MUTABLE_FIELDS if k in values}
            self.session.add(Record(external_id=external_id, **data))
            self.session.commit()
            return "new"

        for key in MUTABLE_FIELDS:
            if key in values:
                setattr(existing, key, values[key])
        existing.updated_at = utcnow()
        self.session.commit()
        return "updated"

    def upsert_many(self, batch: Iterable[dict[str, Any]]) -> UpsertCounts:
        new = updated = 0
        for values in batch:
            if self.upsert(values) == "new":
                new += 1
            else:
                updated += 1
        return UpsertCounts(new=new, updated=updated)

    def mark_matched(self, record_ids: Iterable[int], score: float = 1.0) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        self.session.execute(
            update(Record).where(Record.id.in_(ids)).values(matched=True, match_score=score)
        )
        self.session.commit()
        return len(ids)

    def mark_analyzed(self, record_id: int) -> None:
        self.session.execute(update(Record).where(Record.id == record_id).values(analyzed=True))
        self.session.commit()

    def top_matches(self, limit: int, analyzed: bool | None = False) -> list[Record]:
        """Matched records, best score then most recent first."""
        stmt = select(Record).where(Record.matched.is_(True))
        if analyzed is not None:
            stmt = stmt.where(Record.analyzed.is_(analyzed))
        stmt = stmt.order_by(Record.match_score.desc(), Record.published_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def get_stats(self) -> RecordStats:
        s = self.session
        total = s.execute(select(func.count()).select_from(Record)).scalar_one()
        matched = s.execute(
            select(func.count()).select_from(Record).where(Record.matched.is_(True))
        ).scalar_one()
        analyzed = s.execute(
            select(func.count()).select_from(Record).where(Record.analyzed.is_(True))
        ).scalar_one()

        count_col = func.count().label("n")
        by_region = s.execute(
            select(Record.region, count_col)
            .group_by(Record.region)
            .order_by(count_col.desc())
            .limit(10)
        ).all()
        by_category = s.execute(
            select(Record.category_code, Record.category_name, count_col)
            .group_by(Record.category_code, Record.category_name)
            .order_by(count_col.desc())
        ).all()

        return RecordStats(
            total=int(total),
            matched=int(matched),
            analyzed=int(analyzed),
            by_region=[(r or "??", int(n)) for r, n in by_region],
            by_category=[(name or str(code), int(n)) for code, name, n in by_category],
        )
