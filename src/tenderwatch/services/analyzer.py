"""Deep analysis of single records under a daily quota."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from tenderwatch.db.schema import Analysis, Record
from tenderwatch.errors import BudgetExceededError, ParseError
from tenderwatch.repos.analysis_repo import AnalysisRepository
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.repos.usage_repo import UsageRepository
from tenderwatch.services.llm_client import LLMClient, parse_json_reply
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

ANALYSIS_MAX_TOKENS = 2048

ANALYSIS_SYSTEM_PROMPT = """You are an expert in Brazilian public procurement.
Explain the notice to someone who has never taken part in a tender: direct, practical, plain language.
Rules:
- Answer ONLY with valid JSON, no markdown, nothing outside the JSON
- Amounts in R$, dates as DD/MM/YYYY
- Be honest about what cannot be known from the data given
- When the value is missing say "not informed" instead of guessing"""

_ANALYSIS_SHAPE = """{
  "summary": "plain-language summary (max 200 words)",
  "required_documents": [{"name": "...", "purpose": "...", "mandatory": true}],
  "proposal_deadline": "date or null",
  "difficulty": "easy | medium | hard",
  "difficulty_reason": "why",
  "qualification_requirements": ["..."],
  "beginner_tip": "practical advice",
  "next_step": "what to do now to take part"
}"""


def build_analysis_prompt(record: Record) -> str:
    data = {
        "external_id": record.external_id,
        "description": record.description,
        "category": record.category_name,
        "agency": record.agency_name,
        "location": "/".join(p for p in (record.city, record.region) if p),
        "estimated_value": record.estimated_value,
        "published_at": record.published_at.isoformat() if record.published_at else None,
        "opening_at": record.opening_at.isoformat() if record.opening_at else None,
        "closing_at": record.closing_at.isoformat() if record.closing_at else None,
        "source_url": record.source_url,
    }
    return (
        f"Analyse this notice and return JSON with exactly this structure:\n{_ANALYSIS_SHAPE}\n\n"
        f"Notice data:\n{json.dumps(data, ensure_ascii=False, indent=2)}"
    )


@dataclass(frozen=True)
class AnalysisBatchResult:
    analyzed: int = 0
    failed: int = 0
    limit_reached: bool = False


class Analyzer:
    """
    One LLM call per record, counted against `max_per_day` analysis usage rows.
    A record that already has an analysis is returned from the table.
    """

    def __init__(self, session: Session, client: LLMClient, model: str, max_per_day: int) -> None:
        self.session = session
        self.client = client
        self.model = model
        self.max_per_day = max_per_day
        self.analyses = AnalysisRepository(session)
        self.usage = UsageRepository(session)
        self.records = RecordStore(session)

    def limit_reached(self) -> bool:
        return self.usage.count_for_day("analysis") >= self.max_per_day

    def analyze(self, record: Record) -> Analysis:
        existing = self.analyses.get_for_record(record.id)
        if existing is not None:
            return existing

        if self.limit_reached():
            raise BudgetExceededError(f"daily analysis limit of {self.max_per_day} reached")

        response = self.client.generate(
            ANALYSIS_SYSTEM_PROMPT,
            build_analysis_prompt(record),
            model=self.model,
            max_tokens=ANALYSIS_MAX_TOKENS,
        )
        self.usage.record(
            kind="analysis",
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost_usd,
            record_id=record.id,
        )

        data = parse_json_reply(response.text)
        row = self.analyses.upsert(
            record.id,
            summary=str(data.get("summary") or ""),
            difficulty=data.get("difficulty"),
            next_step=data.get("next_step"),
            required_documents_json=json.dumps(data.get("required_documents") or [], ensure_ascii=False),
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost_usd,
            raw_response=response.text,
        )
        self.records.mark_analyzed(record.id)
        return row

    def analyze_many(self, records: Iterable[Record]) -> AnalysisBatchResult:
        """Analyse in order; a failing record is counted and skipped, only the daily limit stops the batch."""
        analyzed = failed = 0
        for record in records:
            try:
                self.analyze(record)
                analyzed += 1
            except BudgetExceededError as e:
                LOGGER.info("analysis stopped", extra={"reason": str(e), "analyzed": analyzed})
                return AnalysisBatchResult(analyzed=analyzed, failed=failed, limit_reached=True)
            except ParseError as e:
                failed += 1
                LOGGER.warning("analysis reply unusable", extra={"record_id": record.id, "error": str(e)})
            except Exception as e:
                self.session.rollback()
                failed += 1
                LOGGER.error(
                    "analysis failed", extra={"record_id": record.id, "error": f"{type(e).__name__}: {e}"}
                )
        return AnalysisBatchResult(analyzed=analyzed, failed=failed)
