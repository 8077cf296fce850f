from __future__ import annotations

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from tenderwatch.api.deps import get_db
from tenderwatch.api.routes_records import router as records_router
from tenderwatch.api.routes_runs import router as runs_router
from tenderwatch.config.settings import get_settings
from tenderwatch.db.engine import ping_db
from tenderwatch.utils.logging import configure_logging

_settings = get_settings()
configure_logging(_settings.log_level, _settings.json_logs, force=False)

app = FastAPI(title="tenderwatch", version="0.1.0")

app.include_router(records_router, prefix="/api")
app.include_router(runs_router, prefix="/api")


@app.get("/api/health")
def health(session: Session = Depends(get_db)) -> dict:
    db = ping_db(session.get_bind())
    return {
        "status": "ok" if db.ok else "degraded",
        "db": {"ok": db.ok, "detail": db.detail},
    }


@app.get("/health")
def health_root(session: Session = Depends(get_db)) -> dict:
    return health(session)
