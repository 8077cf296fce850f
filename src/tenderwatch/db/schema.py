# src/tenderwatch/db/schema.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite has no tz-aware DateTime)."""
    return datetime.utcnow()


class Base(DeclarativeBase):
    pass


class Record(Base):
    """
    One ingested procurement notice.

    external_id is the PNCP control number and never changes; exactly one row per value.
    The FTS5 table `records_fts` mirrors description/agency_name/city via triggers
    (see db/init_db.py).
    """
    __tablename__ = "records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category_code: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    category_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(2), nullable=True, index=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    agency_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    agency_tax_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    opening_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closing_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    matched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    analyzed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Alert(Base):
    """
    User-defined watch criteria. Written by outer surfaces; the pipeline only reads it.

    List-valued criteria are stored as JSON text. Empty/NULL region or category
    lists mean "any".
    """
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    keywords_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    regions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    categories_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    value_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    value_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    channel: Mapped[str] = mapped_column(String, nullable=False, default="telegram")  # telegram/email/both
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    @property
    def keywords(self) -> list[str]:
        return list(json.loads(self.keywords_json or "[]"))

    @property
    def regions(self) -> list[str]:
        return list(json.loads(self.regions_json)) if self.regions_json else []

    @property
    def categories(self) -> list[int]:
        return [int(c) for c in json.loads(self.categories_json)] if self.categories_json else []

    @property
    def channels(self) -> list[str]:
        if self.channel == "both":
            return ["telegram", "email"]
        return [self.channel]


class SentNotification(Base):
    """
    Sent-log: one row per (alert, record, channel) actually delivered.
    """
    __tablename__ = "sent_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[str] = mapped_column(String, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("alert_id", "record_id", "channel", name="uq_sent_alert_record_channel"),
    )


class ScoreCacheEntry(Base):
    """
    Relevance score for an (alert, record) pair, written once and never invalidated.
    """
    __tablename__ = "score_cache"

    alert_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String, nullable=False)  # classifier/fallback
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class CollectionRun(Base):
    """
    Audit row for one ingestion pass over an axis (category x date range x region).
    """
    __tablename__ = "collection_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_code: Mapped[int] = mapped_column(Integer, nullable=False)
    region: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)

    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class UsageEvent(Base):
    """
    One paid LLM call (classification or analysis). `day` is YYYY-MM-DD for quota counting.
    """
    __tablename__ = "usage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String, nullable=False, index=True)  # classification/analysis
    model: Mapped[str] = mapped_column(String, nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    record_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    day: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Analysis(Base):
    """
    Deep analysis of a single record (one row per record, latest wins).
    """
    __tablename__ = "analyses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    difficulty: Mapped[Optional[str]] = mapped_column(String, nullable=True)  # easy/medium/hard
    next_step: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    required_documents_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    model: Mapped[str] = mapped_column(String, nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    raw_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class CompanyDocument(Base):
    """
    Company compliance document with an expiry date (managed outside the pipeline).
    """
    __tablename__ = "company_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    issuer: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    expires_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class ChatMessage(Base):
    """
    Chat assistant history; only retention cleanup touches it here.
    """
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
