"""Collection run audit routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tenderwatch.api.deps import get_db
from tenderwatch.api.schemas import AlertOut, CollectionRunOut
from tenderwatch.repos.alert_repo import AlertRepository
from tenderwatch.repos.runs_repo import CollectionRunRepository

router = APIRouter(tags=["runs"])


@router.get("/runs", response_model=list[CollectionRunOut])
def list_runs(limit: int = Query(20, ge=1, le=500), session: Session = Depends(get_db)):
    return [CollectionRunOut.model_validate(r) for r in CollectionRunRepository(session).list_recent(limit)]


@router.get("/alerts", response_model=list[AlertOut])
def list_alerts(session: Session = Depends(get_db)):
    return [
        AlertOut(
            id=a.id,
            name=a.name,
            keywords=a.keywords,
            regions=a.regions,
            categories=a.categories,
            value_min=a.value_min,
            value_max=a.value_max,
            channel=a.channel,
            active=a.active,
        )
        for a in AlertRepository(session).list_all()
    ]
