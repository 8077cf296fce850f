# src/tenderwatch/repos/alert_repo.py
from __future__ import annotations

import json
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenderwatch.db.schema import Alert

CHANNELS = ("telegram", "email", "both")


class AlertRepository:
    """
    CRUD for Alert. The pipeline only calls list_active(); the rest serves the CLI.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(
        self,
        name: str,
        keywords: Iterable[str],
        regions: Optional[Iterable[str]] = None,
        categories: Optional[Iterable[int]] = None,
        value_min: Optional[float] = None,
        value_max: Optional[float] = None,
        channel: str = "telegram",
    ) -> Alert:
        if channel not in CHANNELS:
            raise ValueError(f"channel must be one of {', '.join(CHANNELS)}")
        kws = [k.strip() for k in keywords if k and k.strip()]
        if not kws:
            raise ValueError("an alert needs at least one keyword")
        if value_min is not None and value_max is not None and value_min > value_max:
            raise ValueError("value_min is greater than value_max")

        region_list = [r.strip().upper() for r in regions or [] if r.strip()]
        category_list = [int(c) for c in categories or []]
        alert = Alert(
            name=name,
            keywords_json=json.dumps(kws, ensure_ascii=False),
            regions_json=json.dumps(region_list) if region_list else None,
            categories_json=json.dumps(category_list) if category_list else None,
            value_min=value_min,
            value_max=value_max,
            channel=channel,
            active=True,
        )
        self.session.add(alert)
        self.session.commit()
        return alert

    def get(self, alert_id: int) -> Alert | None:
        return self.session.get(Alert, alert_id)

    def list_all(self) -> list[Alert]:
        return list(self.session.execute(select(Alert).order_by(Alert.id)).scalars())

    def list_active(self) -> list[Alert]:
        stmt = select(Alert).where(Alert.active.is_(True)).order_by(Alert.id)
        return list(self.session.execute(stmt).scalars())

    def set_active(self, alert_id: int, active: bool) -> bool:
        alert = self.get(alert_id)
        if alert is None:
            return False
        alert.active = active
        self.session.commit()
        return True

    def delete(self, alert_id: int) -> bool:
        alert = self.get(alert_id)
        if alert is None:
            return False
        self.session.delete(alert)
        self.session.commit()
        return True
