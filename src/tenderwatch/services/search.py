"""
Full-text and structured search over stored records.

Keyword lists are OR-ed. Each keyword may use a small query language that maps
onto FTS5: "exact phrase", AND / NOT / OR (any case) and a trailing * for prefix
matching. Anything the builder cannot make sense of is degraded to plain
terms, and a query FTS5 still rejects yields an empty result instead of an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from tenderwatch.db.schema import Record, utcnow
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

OPERATORS = {"AND", "OR", "NOT"}
_ADVANCED_RE = re.compile(r'"|\*|\b(?:AND|NOT|OR)\b', re.IGNORECASE)
_TOKEN_RE = re.compile(r'"[^"]*"|\S+')
_WORD_RE = re.compile(r"\w+", re.UNICODE)

# Candidate pool pulled from the text index before structured filters apply.
TEXT_CANDIDATES = 100
AUTO_MATCH_LIMIT = 1000

_FTS_SQL = """
    SELECT records.*
    FROM records_fts
    JOIN records ON records.id = records_fts.rowid
    WHERE records_fts MATCH :query
    ORDER BY records_fts.rank
    LIMIT :limit
"""


@dataclass(frozen=True)
class SearchFilter:
    keywords: Sequence[str] = ()
    regions: Sequence[str] = ()
    categories: Sequence[int] = ()
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    open_only: bool = False
    limit: int = 20
    offset: int = 0


def has_advanced_operators(keyword: str) -> bool:
    return bool(_ADVANCED_RE.search(keyword))


def _quote(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def _advanced_expression(keyword: str) -> str | None:
    # unbalanced quotes: treat the whole thing as plain words
    if keyword.count('"') % 2:
        keyword = keyword.replace('"', " ")

    parts: list[str] = []
    for token in _TOKEN_RE.findall(keyword):
        if token.startswith('"') and token.endswith('"') and len(token) >= 2:
            inner = " ".join(_WORD_RE.findall(token[1:-1]))
            if inner:
                parts.append(_quote(inner))
        elif token.upper() in OPERATORS:
            parts.append(token.upper())
        elif token.endswith("*"):
            words = _WORD_RE.findall(token)
            if words:
                parts.append(_quote(" ".join(words)) + "*")
        else:
            words = _WORD_RE.findall(token)
            if words:
                parts.append(_quote(" ".join(words)))

    # drop operators with nothing to bind to on either side
    cleaned: list[str] = []
    for part in parts:
        if part in OPERATORS and (not cleaned or cleaned[-1] in OPERATORS):
            continue
        cleaned.append(part)
    while cleaned and cleaned[-1] in OPERATORS:
        cleaned.pop()

    return " ".join(cleaned) or None


def build_match_query(keywords: Sequence[str]) -> str | None:
    """OR across keywords; None when nothing searchable is left."""
    exprs: list[str] = []
    for keyword in keywords:
        keyword = (keyword or "").strip()
        if not keyword:
            continue
        if has_advanced_operators(keyword):
            expr = _advanced_expression(keyword)
        else:
            expr = _quote(keyword)
        if expr:
            exprs.append(f"({expr})")
    return " OR ".join(exprs) or None


class SearchIndex:
    def __init__(self, session: Session, now_fn: Callable[[], datetime] = utcnow) -> None:
        self.session = session
        self.now_fn = now_fn

    def search_text(self, keywords: Sequence[str], limit: int = 20) -> list[Record]:
        query = build_match_query(keywords)
        if query is None:
            return []
        stmt = select(Record).from_statement(text(_FTS_SQL).bindparams(query=query, limit=limit))
        try:
            return list(self.session.execute(stmt).scalars())
        except OperationalError as e:
            LOGGER.warning("full-text query rejected", extra={"fts_query": query, "error": str(e.orig)})
            return []

    def _keep(self, record: Record, flt: SearchFilter, now: datetime) -> bool:
        if flt.regions and record.region not in flt.regions:
            return False
        if flt.categories and record.category_code not in flt.categories:
            return False
        if flt.value_min is not None and (record.estimated_value is None or record.estimated_value < flt.value_min):
            return False
        if flt.value_max is not None and (record.estimated_value is None or record.estimated_value > flt.value_max):
            return False
        if flt.open_only and (record.closing_at is None or record.closing_at < now):
            return False
        return True

    def search(self, flt: SearchFilter) -> list[Record]:
        now = self.now_fn()

        if flt.keywords:
            # filters narrow the keyword hits; the full table is never re-queried
            candidates = self.search_text(flt.keywords, limit=max(flt.limit + flt.offset, TEXT_CANDIDATES))
            kept = [r for r in candidates if self._keep(r, flt, now)]
            return kept[flt.offset : flt.offset + flt.limit]

        stmt = select(Record)
        if flt.regions:
            stmt = stmt.where(Record.region.in_(list(flt.regions)))
        if flt.categories:
            stmt = stmt.where(Record.category_code.in_(list(flt.categories)))
        if flt.value_min is not None:
            stmt = stmt.where(Record.estimated_value >= flt.value_min)
        if flt.value_max is not None:
            stmt = stmt.where(Record.estimated_value <= flt.value_max)
        if flt.open_only:
            stmt = stmt.where(Record.closing_at >= now)
        stmt = stmt.order_by(Record.published_at.desc(), Record.id.desc()).limit(flt.limit).offset(flt.offset)
        return list(self.session.execute(stmt).scalars())

    def auto_match(self, keywords: Sequence[str]) -> int:
        """Flag every text hit for the operator keywords as matched; returns hit count."""
        hits = self.search_text(keywords, limit=AUTO_MATCH_LIMIT)
        return RecordStore(self.session).mark_matched((r.id for r in hits), score=1.0)
