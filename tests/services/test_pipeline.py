from __future__ import annotations

from datetime import date

import httpx
import pytest

from tenderwatch.clients.pncp import PncpClient
from tenderwatch.config.settings import Settings
from tenderwatch.repos.alert_repo import AlertRepository
from tenderwatch.repos.document_repo import DocumentRepository
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.services import pipeline as pipeline_module
from tenderwatch.services.llm_client import StubLLMClient
from tenderwatch.services.pipeline import PipelineOrchestrator

TODAY = date(2025, 1, 15)


class FakeTransport:
    channel = "telegram"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, bool]] = []

    def send(self, subject: str, body: str, rich: bool = True) -> None:
        self.sent.append((subject, body, rich))


def _item(n: str, text: str) -> dict:
    return {
        "numeroControlePNCP": n,
        "objetoCompra": text,
        "modalidadeId": 6,
        "unidadeOrgao": {"ufSigla": "SP", "municipioNome": "Campinas"},
        "orgaoEntidade": {"cnpj": "1", "razaoSocial": "Prefeitura de Campinas"},
        "valorTotalEstimado": 12000,
        "dataPublicacaoPncp": "2025-01-14T10:00:00",
    }


def _handler(request: httpx.Request) -> httpx.Response:
    items = [_item("P-1", "Aquisição de software de gestão"), _item("P-2", "Serviço de limpeza predial")]
    return httpx.Response(200, json={"data": items, "paginasRestantes": 0, "totalRegistros": 2})


@pytest.fixture
def transport():
    return FakeTransport()


def _orchestrator(session_factory, transport, llm_client=None, **overrides):
    settings = Settings(categories=[6], regions=[], keywords=["software"], **overrides)
    source = PncpClient(
        base_url="https://pncp.test/api/consulta",
        client=httpx.Client(transport=httpx.MockTransport(_handler)),
        sleep=lambda s: None,
    )
    return PipelineOrchestrator(
        session_factory,
        settings,
        source,
        llm_client=llm_client,
        transports={"telegram": transport},
        today_fn=lambda: TODAY,
    )


@pytest.fixture
def alert(session_factory):
    with session_factory() as s:
        return AlertRepository(s).create(name="Software", keywords=["software"], regions=["sp"])


def test_full_cycle_collects_matches_and_notifies(session_factory, transport, alert):
    summary = _orchestrator(session_factory, transport).run_cycle()

    assert summary.ok
    assert (summary.collected, summary.new, summary.updated) == (2, 2, 0)
    assert summary.matched == 1
    assert summary.notifications_sent == 1
    assert summary.classifications == 0
    assert len(transport.sent) == 1
    assert "software de gestão" in transport.sent[0][1]

    with session_factory() as s:
        assert RecordStore(s).get_stats().matched == 1


def test_second_cycle_does_not_renotify(session_factory, transport, alert):
    orchestrator = _orchestrator(session_factory, transport)
    orchestrator.run_cycle()

    second = orchestrator.run_cycle()

    assert (second.new, second.updated) == (0, 2)
    assert second.notifications_sent == 0
    assert len(transport.sent) == 1


def test_classifier_scores_candidates(session_factory, transport, alert):
    client = StubLLMClient('{"score": 85, "rationale": "software purchase"}')
    summary = _orchestrator(session_factory, transport, llm_client=client).run_cycle()

    assert summary.classifications == 1
    assert summary.notifications_sent == 1


def test_low_classifier_score_suppresses_notification(session_factory, transport, alert):
    client = StubLLMClient('{"score": 10, "rationale": "unrelated"}')
    summary = _orchestrator(session_factory, transport, llm_client=client).run_cycle()

    assert summary.notifications_sent == 0
    assert transport.sent == []


def test_failing_stage_does_not_stop_later_stages(session_factory, transport, alert, monkeypatch):
    def explode(self, keywords):
        raise RuntimeError("index corrupted")

    monkeypatch.setattr(pipeline_module.SearchIndex, "auto_match", explode)

    summary = _orchestrator(session_factory, transport).run_cycle()

    assert summary.failed_stages == ["match"]
    assert not summary.ok
    assert summary.collected == 2
    assert summary.notifications_sent == 1


def test_housekeeping_reports_documents(session_factory, transport):
    with session_factory() as s:
        docs = DocumentRepository(s)
        docs.add("fgts", "CRF FGTS", date(2025, 1, 20))
        docs.add("cnd", "CND Federal", date(2025, 1, 1))

    orchestrator = _orchestrator(session_factory, transport)
    summaries = [orchestrator.run_cycle() for _ in range(3)]

    assert all((s.docs_expiring, s.docs_expired) == (1, 1) for s in summaries)
    assert transport.sent == []


def test_auto_analysis_runs_for_matched_records(session_factory, transport):
    reply = '{"summary": "ok", "difficulty": "easy", "next_step": "x", "required_documents": []}'
    summary = _orchestrator(
        session_factory,
        transport,
        llm_client=StubLLMClient(reply),
        auto_analyze=True,
        analysis_top_n=5,
    ).run_cycle()

    assert summary.analyzed == 1


class ClosableLLM:
    def __init__(self) -> None:
        self.closed = False

    def generate(self, system_prompt, user_prompt, model, max_tokens=512):
        return StubLLMClient().generate(system_prompt, user_prompt, model, max_tokens)

    def close(self) -> None:
        self.closed = True


def test_close_releases_llm_client(session_factory, transport):
    client = ClosableLLM()
    orchestrator = _orchestrator(session_factory, transport, llm_client=client)

    orchestrator.close()

    assert client.closed is True


def test_close_without_llm_client(session_factory, transport):
    _orchestrator(session_factory, transport).close()
