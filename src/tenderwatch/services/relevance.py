"""
Relevance scoring for (alert, record) pairs.

Decision chain per pair, each branch its own result type:
- Cached: a score already stored for the pair, no external call
- Classified: cache miss with a classifier budget slot; LLM reply clamped to 0..100
- Fallback: keyword containment, used when there is no budget, no classifier,
  or the classifier call/reply failed

Classified and Fallback results are written to the cache before being returned.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy.orm import Session

from tenderwatch.config.settings import Settings
from tenderwatch.db.schema import Alert, Record
from tenderwatch.errors import ParseError
from tenderwatch.repos.score_cache_repo import ScoreCacheRepository
from tenderwatch.repos.usage_repo import UsageRepository
from tenderwatch.services.llm_client import LLMClient, LLMResponse, parse_json_reply
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

CLASSIFIER_SYSTEM_PROMPT = (
    "You rate how relevant a public procurement notice is for a company. "
    "Answer with JSON only."
)
CLASSIFIER_MAX_TOKENS = 150


@dataclass(frozen=True)
class Cached:
    score: int
    rationale: str


@dataclass(frozen=True)
class Classified:
    score: int
    rationale: str


@dataclass(frozen=True)
class Fallback:
    score: int
    rationale: str


ScoreOutcome = Union[Cached, Classified, Fallback]


@dataclass(frozen=True)
class ScoredRecord:
    record: Record
    outcome: ScoreOutcome

    @property
    def score(self) -> int:
        return self.outcome.score


def clamp_score(value: object) -> int:
    try:
        score = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise ParseError(f"score is not numeric: {value!r}") from e
    return max(0, min(100, score))


def _plain_keyword(keyword: str) -> str:
    return keyword.replace('"', " ").rstrip("*").strip().lower()


def fallback_score(keywords: Sequence[str], text: str) -> Fallback:
    """
    Case-insensitive containment of each keyword in `text`.

    all -> 100, none -> 0, partial -> proportional and kept strictly inside (0, 100).
    """
    kws = [k for k in (_plain_keyword(k) for k in keywords) if k]
    if not kws:
        return Fallback(score=0, rationale="no keywords to match")

    haystack = (text or "").lower()
    hits = sum(1 for k in kws if k in haystack)
    total = len(kws)
    if hits == total:
        score = 100
    elif hits == 0:
        score = 0
    else:
        score = min(99, max(1, round(100 * hits / total)))
    return Fallback(score=score, rationale=f"{hits}/{total} keywords matched")


class ClassifierBudget:
    """
    Classifier calls allowed in one cycle: the smaller of the per-cycle cap and
    what is left of the daily limit. try_reserve() is atomic across threads.
    """

    def __init__(self, per_cycle: int, daily_limit: int, used_today: int = 0) -> None:
        self.per_cycle = per_cycle
        self.daily_limit = daily_limit
        self.used_today = used_today
        self._reserved = 0
        self._lock = threading.Lock()

    @classmethod
    def for_today(cls, usage: UsageRepository, settings: Settings) -> "ClassifierBudget":
        return cls(
            per_cycle=settings.classifier_max_per_cycle,
            daily_limit=settings.classifier_daily_limit,
            used_today=usage.count_for_day("classification"),
        )

    @property
    def reserved(self) -> int:
        return self._reserved

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return not self._available()

    def _available(self) -> bool:
        return self._reserved < self.per_cycle and self.used_today + self._reserved < self.daily_limit

    def try_reserve(self) -> bool:
        with self._lock:
            if not self._available():
                return False
            self._reserved += 1
            return True


def build_classifier_prompt(keywords: Sequence[str], record: Record) -> str:
    value = f"R$ {record.estimated_value:,.2f}" if record.estimated_value is not None else "not informed"
    return "\n".join(
        [
            f"Rate the relevance of this notice for a company looking for: {', '.join(keywords)}.",
            f"Notice: {record.description} | Agency: {record.agency_name or 'N/A'} "
            f"| Region: {record.region or 'N/A'} | Value: {value}",
            'Reply ONLY with JSON: {"score": 0-100, "rationale": "one line"}',
        ]
    )


def parse_classifier_reply(text: str) -> Classified:
    data = parse_json_reply(text)
    if "score" not in data:
        raise ParseError("classifier reply has no score")
    return Classified(score=clamp_score(data["score"]), rationale=str(data.get("rationale") or ""))


class RelevanceScorer:
    """
    Scores pairs for one cycle. Owns no connection: cache and usage rows go
    through the injected Session on the calling thread; only the classifier
    HTTP calls run in worker threads.
    """

    def __init__(
        self,
        session: Session,
        client: Optional[LLMClient],
        budget: ClassifierBudget,
        model: str,
        threshold: int = 60,
        concurrency: int = 3,
    ) -> None:
        self.session = session
        self.client = client
        self.budget = budget
        self.model = model
        self.threshold = threshold
        self.concurrency = max(1, concurrency)
        self.cache = ScoreCacheRepository(session)
        self.usage = UsageRepository(session)

    def _call(self, prompt: str) -> LLMResponse:
        assert self.client is not None
        return self.client.generate(CLASSIFIER_SYSTEM_PROMPT, prompt, model=self.model, max_tokens=CLASSIFIER_MAX_TOKENS)

    def _from_cache(self, alert: Alert, record: Record) -> Cached | None:
        entry = self.cache.get(alert.id, record.id)
        if entry is None:
            return None
        return Cached(score=entry.score, rationale=entry.rationale)

    def _settle(self, alert: Alert, record: Record, response: LLMResponse | None, error: BaseException | None) -> ScoreOutcome:
        """Turn a classifier call result into an outcome, record usage, persist to cache."""
        outcome: ScoreOutcome
        if response is not None:
            self.usage.record(
                kind="classification",
                model=response.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                cost_usd=response.cost_usd,
                record_id=record.id,
            )
            try:
                outcome = parse_classifier_reply(response.text)
            except ParseError as e:
                error = e

        if error is not None or response is None:
            LOGGER.warning(
                "classifier failed, using keyword fallback",
                extra={"alert_id": alert.id, "record_id": record.id, "error": str(error)},
            )
            outcome = fallback_score(alert.keywords, record.description)

        self._store(alert, record, outcome)
        return outcome

    def _store(self, alert: Alert, record: Record, outcome: ScoreOutcome) -> None:
        source = "classifier" if isinstance(outcome, Classified) else "fallback"
        self.cache.put(alert.id, record.id, outcome.score, outcome.rationale, source)

    def score(self, alert: Alert, record: Record) -> ScoreOutcome:
        cached = self._from_cache(alert, record)
        if cached is not None:
            return cached

        if self.client is None or not self.budget.try_reserve():
            outcome = fallback_score(alert.keywords, record.description)
            self._store(alert, record, outcome)
            return outcome

        try:
            response = self._call(build_classifier_prompt(alert.keywords, record))
        except Exception as e:  # any classifier failure is soft
            return self._settle(alert, record, None, e)
        return self._settle(alert, record, response, None)

    def score_many(self, alert: Alert, records: Iterable[Record]) -> list[ScoredRecord]:
        """
        Score in chunks of `concurrency`. Budget slots are reserved before each
        call; calls inside a chunk run in parallel.
        """
        records = list(records)
        results: list[ScoredRecord] = []
        keywords = alert.keywords

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for start in range(0, len(records), self.concurrency):
                chunk = records[start : start + self.concurrency]
                outcomes: dict[int, ScoreOutcome] = {}
                pending = {}

                for record in chunk:
                    cached = self._from_cache(alert, record)
                    if cached is not None:
                        outcomes[record.id] = cached
                    elif self.client is not None and self.budget.try_reserve():
                        prompt = build_classifier_prompt(keywords, record)
                        pending[record.id] = (record, pool.submit(self._call, prompt))
                    else:
                        outcome = fallback_score(keywords, record.description)
                        self._store(alert, record, outcome)
                        outcomes[record.id] = outcome

                for record_id, (record, future) in pending.items():
                    try:
                        response = future.result()
                    except Exception as e:  # any classifier failure is soft
                        outcomes[record_id] = self._settle(alert, record, None, e)
                    else:
                        outcomes[record_id] = self._settle(alert, record, response, None)

                results.extend(ScoredRecord(record=r, outcome=outcomes[r.id]) for r in chunk)

        return results

    def relevant(self, scored: Iterable[ScoredRecord]) -> list[ScoredRecord]:
        return [s for s in scored if s.score >= self.threshold]
