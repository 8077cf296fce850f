"""
One ingestion cycle: collect -> match -> analyse -> alerts -> housekeeping.

Each stage is isolated: an exception is logged with its stage name, the
session is rolled back and the next stage runs. A cycle always returns a
PipelineSummary.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Callable, Mapping, Optional

from sqlalchemy.orm import Session, sessionmaker

from tenderwatch.clients.pncp import PncpClient
from tenderwatch.config.settings import Settings, get_settings
from tenderwatch.db.engine import build_engine
from tenderwatch.db.session import build_session_factory
from tenderwatch.repos.alert_repo import AlertRepository
from tenderwatch.repos.notification_repo import SentLogRepository
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.repos.usage_repo import UsageRepository
from tenderwatch.services.analyzer import Analyzer
from tenderwatch.services.collector import Collector, build_axes
from tenderwatch.services.housekeeping import run_housekeeping
from tenderwatch.services.llm_client import LLMClient, get_llm_client
from tenderwatch.services.notifier import NotificationDispatcher, Transport, build_transports
from tenderwatch.services.relevance import ClassifierBudget, RelevanceScorer
from tenderwatch.services.search import SearchFilter, SearchIndex
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

ALERT_CANDIDATES = 50


@dataclass
class PipelineSummary:
    collected: int = 0
    new: int = 0
    updated: int = 0
    axis_errors: int = 0
    matched: int = 0
    analyzed: int = 0
    classifications: int = 0
    notifications_sent: int = 0
    notification_errors: int = 0
    docs_expiring: int = 0
    docs_expired: int = 0
    chat_messages_removed: int = 0
    failed_stages: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed_stages

    def to_dict(self) -> dict:
        return asdict(self)


class PipelineOrchestrator:
    """
    Owns the session factory and the outbound clients for its lifetime; nothing
    here is module-global. Build with from_settings() in production, or inject
    fakes directly in tests.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Settings,
        source: PncpClient,
        llm_client: Optional[LLMClient] = None,
        transports: Optional[Mapping[str, Transport]] = None,
        today_fn: Callable[[], date] = date.today,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.source = source
        self.llm_client = llm_client
        self.transports = dict(transports or {})
        self.today_fn = today_fn

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineOrchestrator":
        settings = settings or get_settings()
        return cls(
            session_factory=build_session_factory(build_engine(settings.db_url)),
            settings=settings,
            source=PncpClient(),
            llm_client=get_llm_client(settings),
            transports=build_transports(settings),
        )

    def close(self) -> None:
        self.source.close()
        close_llm = getattr(self.llm_client, "close", None)
        if close_llm is not None:
            close_llm()

    # -- stages -----------------------------------------------------------

    def _collect(self, session: Session, summary: PipelineSummary) -> None:
        s = self.settings
        axes = build_axes(s.categories, s.regions, s.collect_lookback_days, today=self.today_fn())
        result = Collector(session, self.source).collect(axes)
        summary.collected = result.total
        summary.new = result.new
        summary.updated = result.updated
        summary.axis_errors = result.failed_axes

    def _match(self, session: Session, summary: PipelineSummary) -> None:
        if self.settings.keywords:
            summary.matched = SearchIndex(session).auto_match(self.settings.keywords)

    def _analyze(self, session: Session, summary: PipelineSummary) -> None:
        if not self.settings.auto_analyze or self.llm_client is None:
            return
        analyzer = Analyzer(
            session,
            self.llm_client,
            model=self.settings.analysis_model,
            max_per_day=self.settings.analysis_max_per_day,
        )
        if analyzer.limit_reached():
            LOGGER.info("daily analysis limit reached, skipping analysis")
            return
        top = RecordStore(session).top_matches(self.settings.analysis_top_n)
        summary.analyzed = analyzer.analyze_many(top).analyzed

    def _alerts(self, session: Session, summary: PipelineSummary) -> None:
        s = self.settings
        alerts = AlertRepository(session).list_active()
        if not alerts:
            return

        budget = ClassifierBudget.for_today(UsageRepository(session), s)
        scorer = RelevanceScorer(
            session,
            self.llm_client if s.semantic_matching else None,
            budget,
            model=s.classifier_model,
            threshold=s.relevance_threshold,
            concurrency=s.scoring_concurrency,
        )
        dispatcher = NotificationDispatcher(session, self.transports)
        sent_log = SentLogRepository(session)
        search = SearchIndex(session)

        for alert in alerts:
            channels = [c for c in alert.channels if c in self.transports]
            if not channels:
                LOGGER.debug("alert has no configured channel", extra={"alert_id": alert.id})
                continue
            try:
                candidates = search.search(
                    SearchFilter(
                        keywords=alert.keywords,
                        regions=alert.regions,
                        categories=alert.categories,
                        value_min=alert.value_min,
                        value_max=alert.value_max,
                        limit=ALERT_CANDIDATES,
                    )
                )
                sent = {c: sent_log.sent_record_ids(alert.id, c) for c in channels}
                pending = [r for r in candidates if any(r.id not in sent[c] for c in channels)]
                if not pending:
                    continue

                relevant = scorer.relevant(scorer.score_many(alert, pending))
                LOGGER.info(
                    "alert scored",
                    extra={"alert_id": alert.id, "candidates": len(pending), "relevant": len(relevant)},
                )
                result = dispatcher.dispatch(alert, [sr.record for sr in relevant])
                summary.notifications_sent += result.sent
                summary.notification_errors += result.errors
            except Exception:
                session.rollback()
                summary.notification_errors += 1
                LOGGER.exception("alert processing failed", extra={"alert_id": alert.id})

        summary.classifications = budget.reserved

    def _housekeeping(self, session: Session, summary: PipelineSummary) -> None:
        result = run_housekeeping(
            session,
            warning_days=self.settings.document_warning_days,
            retention_days=self.settings.chat_retention_days,
            today=self.today_fn(),
        )
        summary.docs_expiring = result.docs_expiring
        summary.docs_expired = result.docs_expired
        summary.chat_messages_removed = result.chat_messages_removed

    # -- driver -----------------------------------------------------------

    def _run_stage(
        self,
        name: str,
        stage: Callable[[Session, PipelineSummary], None],
        session: Session,
        summary: PipelineSummary,
    ) -> None:
        try:
            stage(session, summary)
        except Exception:
            session.rollback()
            summary.failed_stages.append(name)
            LOGGER.exception("pipeline stage failed", extra={"stage": name})

    def run_cycle(self) -> PipelineSummary:
        summary = PipelineSummary()
        started = time.monotonic()
        stages = (
            ("collect", self._collect),
            ("match", self._match),
            ("analyze", self._analyze),
            ("alerts", self._alerts),
            ("housekeeping", self._housekeeping),
        )
        with self.session_factory() as session:
            for name, stage in stages:
                self._run_stage(name, stage, session, summary)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        LOGGER.info("pipeline cycle finished", extra=summary.to_dict())
        return summary
