"""PNCP consulta API client: one axis at a time, page by page, with retry/backoff."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterator, Optional

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tenderwatch.config.settings import get_settings
from tenderwatch.errors import ParseError, PermanentRequestError, TransientNetworkError
from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

PUBLICATION_PATH = "/v1/contratacoes/publicacao"

# codigoModalidadeContratacao -> label
CATEGORY_NAMES: dict[int, str] = {
    1: "Leilão - Eletrônico",
    2: "Diálogo Competitivo",
    3: "Concurso",
    4: "Concorrência - Eletrônica",
    5: "Concorrência - Presencial",
    6: "Pregão - Eletrônico",
    7: "Pregão - Presencial",
    8: "Dispensa de Licitação",
    9: "Inexigibilidade",
    10: "Manifestação de Interesse",
    11: "Pré-qualificação",
    12: "Credenciamento",
    13: "Leilão - Presencial",
}


@dataclass(frozen=True)
class Axis:
    """One independent collection dimension."""

    category_code: int
    date_from: date
    date_to: date
    region: Optional[str] = None

    def describe(self) -> str:
        region = self.region or "*"
        return f"category={self.category_code} region={region} {self.date_from:%Y-%m-%d}..{self.date_to:%Y-%m-%d}"


@dataclass(frozen=True)
class SourcePage:
    items: list[dict[str, Any]]
    has_more: bool
    total_count: int


def _parse_dt(value: Any) -> Optional[datetime]:
    """PNCP sends ISO-8601 without offset, e.g. '2025-01-29T14:30:00'."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def map_item(item: dict[str, Any]) -> dict[str, Any]:
    """
    Map one PNCP contratação into Record column values.

    Raises ParseError when the control number (our external id) is missing.
    """
    external_id = item.get("numeroControlePNCP")
    if not external_id:
        raise ParseError("item without numeroControlePNCP")

    unit = item.get("unidadeOrgao") or {}
    agency = item.get("orgaoEntidade") or {}
    category_code = item.get("modalidadeId")
    value = item.get("valorTotalEstimado")

    return {
        "external_id": str(external_id),
        "description": item.get("objetoCompra") or "",
        "category_code": int(category_code) if category_code is not None else 0,
        "category_name": item.get("modalidadeNome") or CATEGORY_NAMES.get(category_code or 0),
        "region": unit.get("ufSigla"),
        "city": unit.get("municipioNome"),
        "agency_name": agency.get("razaoSocial"),
        "agency_tax_id": agency.get("cnpj"),
        "estimated_value": float(value) if value is not None else None,
        "published_at": _parse_dt(item.get("dataPublicacaoPncp")),
        "opening_at": _parse_dt(item.get("dataAberturaProposta")),
        "closing_at": _parse_dt(item.get("dataEncerramentoProposta")),
        "source_url": item.get("linkSistemaOrigem"),
        "raw_json": json.dumps(item, ensure_ascii=False),
    }


class PncpClient:
    """
    Paginated reader for the publication endpoint.

    - fetch_page: one logical request; transient failures (5xx, 429, transport)
      are retried with base * 2^attempt backoff up to `max_retries` attempts in total,
      other 4xx fail immediately
    - fetch_all: generator of item batches for one axis, stops on an empty page
      or when the server reports no remaining pages

    Pass `client` to inject an httpx.Client (tests use httpx.MockTransport); an
    injected client is never closed here.
    """

    def __init__(
        self,
        base_url: str | None = None,
        page_size: int | None = None,
        max_retries: int | None = None,
        backoff_base_s: float | None = None,
        backoff_cap_s: float | None = None,
        timeout_s: float | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.source_base_url).rstrip("/")
        self.page_size = page_size or settings.source_page_size
        self.max_retries = max_retries or settings.source_max_retries
        self.backoff_base_s = settings.source_backoff_base_s if backoff_base_s is None else backoff_base_s
        self.backoff_cap_s = settings.source_backoff_cap_s if backoff_cap_s is None else backoff_cap_s
        self._timeout_s = timeout_s or settings.source_timeout_s
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout_s)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PncpClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _params(self, axis: Axis, page: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "dataInicial": axis.date_from.strftime("%Y%m%d"),
            "dataFinal": axis.date_to.strftime("%Y%m%d"),
            "codigoModalidadeContratacao": axis.category_code,
            "pagina": page,
            "tamanhoPagina": self.page_size,
        }
        if axis.region:
            params["uf"] = axis.region
        return params

    def _get_once(self, url: str, params: dict[str, Any]) -> httpx.Response:
        try:
            resp = self._client.get(url, params=params, timeout=self._timeout_s)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e

        status = resp.status_code
        if status == 429 or status >= 500:
            raise TransientNetworkError(f"PNCP API error {status}", status_code=status)
        if status >= 400:
            raise PermanentRequestError(f"PNCP API error {status}: {resp.text[:200]}", status_code=status)
        return resp

    def _log_retry(self, retry_state) -> None:
        LOGGER.warning(
            "PNCP request failed, retrying",
            extra={
                "attempt": retry_state.attempt_number,
                "max_retries": self.max_retries,
                "wait_s": retry_state.next_action.sleep if retry_state.next_action else None,
                "error": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )

    def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_base_s, min=0, max=self.backoff_cap_s),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(self._get_once, url, params)

    def fetch_page(self, axis: Axis, page: int = 1) -> SourcePage:
        resp = self._get(f"{self.base_url}{PUBLICATION_PATH}", self._params(axis, page))

        # PNCP answers 204 when the window has no results
        if resp.status_code == 204 or not resp.content:
            return SourcePage(items=[], has_more=False, total_count=0)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseError(f"PNCP returned non-JSON body for {axis.describe()} page={page}") from e
        if not isinstance(payload, dict):
            raise ParseError(f"unexpected PNCP payload type: {type(payload).__name__}")

        items = payload.get("data") or []
        remaining = int(payload.get("paginasRestantes") or 0)
        return SourcePage(
            items=list(items),
            has_more=remaining > 0 and not payload.get("empty", False),
            total_count=int(payload.get("totalRegistros") or 0),
        )

    def fetch_all(self, axis: Axis) -> Iterator[list[dict[str, Any]]]:
        page = 1
        while True:
            result = self.fetch_page(axis, page)
            if not result.items:
                return
            LOGGER.debug(
                "PNCP page fetched",
                extra={"axis": axis.describe(), "page": page, "items": len(result.items)},
            )
            yield result.items
            if not result.has_more:
                return
            page += 1
