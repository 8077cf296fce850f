"""API schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CountOut(BaseModel):
    key: str
    count: int


class StatsResponse(BaseModel):
    total: int
    matched: int
    analyzed: int
    by_region: list[CountOut]
    by_category: list[CountOut]
    classifications_today: int
    analyses_today: int
    cost_today_usd: float


class RecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    description: str
    category_code: int
    category_name: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    agency_name: Optional[str] = None
    estimated_value: Optional[float] = None
    published_at: Optional[datetime] = None
    closing_at: Optional[datetime] = None
    source_url: Optional[str] = None
    matched: bool
    analyzed: bool


class CollectionRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_code: int
    region: Optional[str] = None
    date_from: date
    date_to: date
    total: int
    new: int
    updated: int
    success: bool
    error_message: Optional[str] = None
    duration_ms: int
    started_at: datetime
    finished_at: Optional[datetime] = None


class AlertOut(BaseModel):
    id: int
    name: str
    keywords: list[str]
    regions: list[str]
    categories: list[int]
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    channel: str
    active: bool
