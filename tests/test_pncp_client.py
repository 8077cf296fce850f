from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from tenderwatch.clients.pncp import Axis, PncpClient, map_item
from tenderwatch.errors import ParseError, PermanentRequestError, TransientNetworkError

AXIS = Axis(category_code=6, date_from=date(2025, 1, 1), date_to=date(2025, 1, 2))


def _item(n: str) -> dict:
    return {
        "numeroControlePNCP": n,
        "objetoCompra": f"Objeto {n}",
        "modalidadeId": 6,
        "modalidadeNome": "Pregão - Eletrônico",
        "valorTotalEstimado": 1000.5,
        "unidadeOrgao": {"ufSigla": "SP", "municipioNome": "Campinas"},
        "orgaoEntidade": {"cnpj": "123", "razaoSocial": "Prefeitura"},
        "dataPublicacaoPncp": "2025-01-01T10:00:00",
        "dataEncerramentoProposta": "2025-02-01T18:00:00",
        "linkSistemaOrigem": "https://example.com/x",
    }


def _page(items: list, remaining: int) -> dict:
    return {
        "data": items,
        "totalRegistros": 4,
        "totalPaginas": 2,
        "numeroPagina": 1,
        "paginasRestantes": remaining,
        "empty": not items,
    }


def _client(handler, sleeps: list | None = None, **kwargs) -> PncpClient:
    return PncpClient(
        base_url="https://pncp.test/api/consulta",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
        **kwargs,
    )


def test_fetch_all_two_batches_two_calls():
    pages = {
        1: _page([_item("A"), _item("B")], remaining=1),
        2: _page([_item("C"), _item("D")], remaining=0),
        3: _page([], remaining=0),
    }
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["pagina"])
        calls.append(page)
        return httpx.Response(200, json=pages[page])

    batches = list(_client(handler).fetch_all(AXIS))

    assert [len(b) for b in batches] == [2, 2]
    assert calls == [1, 2]


def test_fetch_all_stops_on_empty_page_even_if_more_reported():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(int(request.url.params["pagina"]))
        return httpx.Response(200, json={"data": [], "paginasRestantes": 5})

    assert list(_client(handler).fetch_all(AXIS)) == []
    assert calls == [1]


def test_fetch_all_is_fresh_on_each_call():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(int(request.url.params["pagina"]))
        return httpx.Response(200, json=_page([_item("A")], remaining=0))

    client = _client(handler)
    list(client.fetch_all(AXIS))
    list(client.fetch_all(AXIS))
    assert calls == [1, 1]


def test_fetch_page_sends_wire_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        seen["path"] = request.url.path
        return httpx.Response(204)

    axis = Axis(category_code=8, date_from=date(2025, 3, 1), date_to=date(2025, 3, 4), region="RJ")
    page = _client(handler, page_size=100).fetch_page(axis, 3)

    assert page.items == [] and page.has_more is False
    assert seen["path"] == "/api/consulta/v1/contratacoes/publicacao"
    assert seen["dataInicial"] == "20250301"
    assert seen["dataFinal"] == "20250304"
    assert seen["codigoModalidadeContratacao"] == "8"
    assert seen["uf"] == "RJ"
    assert seen["pagina"] == "3"
    assert seen["tamanhoPagina"] == "100"


def test_retries_capped_with_exponential_backoff():
    calls = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503)

    client = _client(handler, sleeps=sleeps, max_retries=3, backoff_base_s=1.0)
    with pytest.raises(TransientNetworkError):
        client.fetch_page(AXIS, 1)

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_backoff_is_capped():
    sleeps: list[float] = []
    client = _client(lambda r: httpx.Response(500), sleeps=sleeps, max_retries=4, backoff_base_s=1.0, backoff_cap_s=2.5)
    with pytest.raises(TransientNetworkError):
        client.fetch_page(AXIS, 1)
    assert sleeps == [1.0, 2.0, 2.5]


def test_client_error_is_not_retried():
    calls = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(400, text="bad date")

    with pytest.raises(PermanentRequestError) as exc:
        _client(handler, sleeps=sleeps).fetch_page(AXIS, 1)

    assert exc.value.status_code == 400
    assert len(calls) == 1
    assert sleeps == []


def test_429_then_success():
    responses = [httpx.Response(429), httpx.Response(200, json=_page([_item("A")], remaining=0))]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    page = _client(handler).fetch_page(AXIS, 1)
    assert len(page.items) == 1
    assert responses == []


def test_network_error_is_transient():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientNetworkError):
        _client(handler, max_retries=2).fetch_page(AXIS, 1)
    assert len(calls) == 2


def test_non_json_body_raises_parse_error():
    client = _client(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
    with pytest.raises(ParseError):
        client.fetch_page(AXIS, 1)


def test_map_item_extracts_record_fields():
    values = map_item(_item("X-1"))

    assert values["external_id"] == "X-1"
    assert values["description"] == "Objeto X-1"
    assert values["region"] == "SP"
    assert values["city"] == "Campinas"
    assert values["agency_name"] == "Prefeitura"
    assert values["estimated_value"] == 1000.5
    assert values["published_at"].year == 2025
    assert values["opening_at"] is None
    assert json.loads(values["raw_json"])["numeroControlePNCP"] == "X-1"


def test_map_item_requires_control_number():
    with pytest.raises(ParseError):
        map_item({"objetoCompra": "sem id"})
