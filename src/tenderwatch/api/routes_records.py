"""Record stats and search routes (read-only)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tenderwatch.api.deps import get_db
from tenderwatch.api.schemas import CountOut, RecordOut, StatsResponse
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.repos.usage_repo import UsageRepository
from tenderwatch.services.search import SearchFilter, SearchIndex

router = APIRouter(tags=["records"])


@router.get("/stats", response_model=StatsResponse)
def stats(session: Session = Depends(get_db)) -> StatsResponse:
    s = RecordStore(session).get_stats()
    usage = UsageRepository(session).summary()
    return StatsResponse(
        total=s.total,
        matched=s.matched,
        analyzed=s.analyzed,
        by_region=[CountOut(key=k, count=n) for k, n in s.by_region],
        by_category=[CountOut(key=k, count=n) for k, n in s.by_category],
        classifications_today=usage.classifications,
        analyses_today=usage.analyses,
        cost_today_usd=round(usage.cost_usd, 4),
    )


@router.get("/records", response_model=list[RecordOut])
def search_records(
    q: list[str] = Query(default=[]),
    region: list[str] = Query(default=[]),
    category: list[int] = Query(default=[]),
    value_min: float | None = None,
    value_max: float | None = None,
    open_only: bool = False,
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_db),
) -> list[RecordOut]:
    flt = SearchFilter(
        keywords=q,
        regions=[r.upper() for r in region],
        categories=category,
        value_min=value_min,
        value_max=value_max,
        open_only=open_only,
        limit=limit,
        offset=offset,
    )
    return [RecordOut.model_validate(r) for r in SearchIndex(session).search(flt)]
