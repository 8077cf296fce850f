"""Collection stage: every axis fetched in turn, upserted, and audited."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from tenderwatch.clients.pncp import Axis, PncpClient, map_item
from tenderwatch.db.schema import CollectionRun, utcnow
from tenderwatch.errors import ParseError
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.repos.runs_repo import CollectionRunRepository
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_axes(
    categories: Sequence[int],
    regions: Sequence[str],
    lookback_days: int = 1,
    today: Optional[date] = None,
) -> list[Axis]:
    """category x region over [today - lookback_days, today]; no regions means one nationwide axis."""
    date_to = today or date.today()
    date_from = date_to - timedelta(days=lookback_days)
    region_list: list[Optional[str]] = list(regions) or [None]
    return [
        Axis(category_code=c, date_from=date_from, date_to=date_to, region=r)
        for c in categories
        for r in region_list
    ]


@dataclass
class CollectionResult:
    total: int = 0
    new: int = 0
    updated: int = 0
    failed_axes: int = 0
    runs: list[CollectionRun] = field(default_factory=list)


class Collector:
    """
    Fetches axes sequentially. An axis that fails is written to collection_runs
    with success=False and the next axis still runs; rows already upserted
    before the failure stay.
    """

    def __init__(self, session: Session, source: PncpClient) -> None:
        self.session = session
        self.source = source
        self.store = RecordStore(session)
        self.runs = CollectionRunRepository(session)

    def collect_axis(self, axis: Axis) -> CollectionRun:
        run = CollectionRun(
            category_code=axis.category_code,
            region=axis.region,
            date_from=axis.date_from,
            date_to=axis.date_to,
            started_at=utcnow(),
        )
        started = time.monotonic()
        total = new = updated = skipped = 0

        try:
            for batch in self.source.fetch_all(axis):
                for item in batch:
                    try:
                        values = map_item(item)
                    except ParseError:
                        skipped += 1
                        continue
                    if self.store.upsert(values) == "new":
                        new += 1
                    else:
                        updated += 1
                    total += 1
            run.success = True
        except Exception as e:
            self.session.rollback()
            run.success = False
            run.error_message = f"{type(e).__name__}: {e}"
            LOGGER.error(
                "axis collection failed",
                extra={"axis": axis.describe(), "stored": total, "error": run.error_message},
            )

        run.total, run.new, run.updated = total, new, updated
        run.duration_ms = int((time.monotonic() - started) * 1000)
        run.finished_at = utcnow()
        self.runs.add(run)

        LOGGER.info(
            "axis collected",
            extra={
                "axis": axis.describe(),
                "total": total,
                "new": new,
                "updated": updated,
                "skipped": skipped,
                "success": run.success,
            },
        )
        return run

    def collect(self, axes: Iterable[Axis]) -> CollectionResult:
        result = CollectionResult()
        for axis in axes:
            run = self.collect_axis(axis)
            result.runs.append(run)
            result.total += run.total
            result.new += run.new
            result.updated += run.updated
            if not run.success:
                result.failed_axes += 1
        return result
