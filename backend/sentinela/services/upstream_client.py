"""
Cliente da API externa world-ecletix.

Nunca propaga exceção: timeout, status não-2xx e JSON malformado viram um
``UpstreamResult`` sem sucesso com o motivo preservado.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

import httpx

from sentinela.config import get_settings
from sentinela.core.logging import get_logger
from sentinela.core.metrics import record_upstream_latency

logger = get_logger(__name__)

ENDPOINTS = {
    "cpf": ("/api/consultarcpf", "cpf"),
    "nome": ("/api/nome-completo", "q"),
    "numero": ("/api/numero", "q"),
}

_RESULT_FIELDS = ("dados", "resultados", "resultado")


@dataclass(frozen=True)
class BooleanFlag:
    """``sucesso`` veio como booleano."""

    value: bool


@dataclass(frozen=True)
class TextFlag:
    """``sucesso`` veio como texto ("true", "ok", ...)."""

    value: str


@dataclass(frozen=True)
class Inferred:
    """Sem indicador explícito: sucesso deduzido da presença de dados."""

    has_results: bool


SuccessIndicator = Union[BooleanFlag, TextFlag, Inferred]

_TRUTHY_TEXT = {"true", "1", "sim", "ok", "success", "sucesso"}


def _has_results(payload: dict[str, Any]) -> bool:
    return any(payload.get(field) for field in _RESULT_FIELDS)


def read_success_indicator(payload: Any) -> SuccessIndicator:
    """Classifica o campo ``sucesso`` da resposta."""
    if not isinstance(payload, dict):
        return Inferred(bool(payload))

    flag = payload.get("sucesso")
    if isinstance(flag, bool):
        return BooleanFlag(flag)
    if isinstance(flag, str):
        return TextFlag(flag)
    return Inferred(_has_results(payload))


def resolve_success(payload: Any) -> bool:
    """
    Normaliza o indicador de sucesso da API externa.

    Booleano é usado diretamente; texto afirmativo conta como sucesso e,
    caso contrário, vale a presença de dados; sem o campo, sucesso é a
    presença de ``dados``/``resultado(s)``.
    """
    indicator = read_success_indicator(payload)
    if isinstance(indicator, BooleanFlag):
        return indicator.value
    if isinstance(indicator, TextFlag):
        return indicator.value.strip().lower() in _TRUTHY_TEXT or _has_results(payload)
    return indicator.has_results


@dataclass(frozen=True)
class UpstreamResult:
    success: bool
    payload: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    elapsed_ms: int = 0


class WorldEcletixClient:
    """Cliente assíncrono para a API de consultas."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.external_api_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.upstream_timeout_seconds
        self.user_agent = settings.upstream_user_agent
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
        )

    async def fetch(self, tipo: str, query: str) -> UpstreamResult:
        """Executa a consulta; o resultado sempre é bem formado."""
        path, param = ENDPOINTS[tipo]
        started = time.perf_counter()
        result = await self._fetch(path, {param: query})
        elapsed = time.perf_counter() - started
        record_upstream_latency(tipo, result.success, elapsed)

        result = replace(result, elapsed_ms=int(elapsed * 1000))
        if not result.success:
            logger.warning(
                "upstream.unsuccessful",
                tipo=tipo,
                status_code=result.status_code,
                error=result.error,
            )
        return result

    async def _fetch(self, path: str, params: dict[str, str]) -> UpstreamResult:
        try:
            async with self._client() as client:
                response = await client.get(path, params=params)
        except httpx.TimeoutException:
            return UpstreamResult(False, error="Tempo limite excedido na API externa")
        except httpx.HTTPError as exc:
            return UpstreamResult(False, error=str(exc) or "Erro de conexão")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            message = None
            if isinstance(payload, dict):
                message = payload.get("erro")
            return UpstreamResult(
                False,
                payload=payload,
                error=message or f"Erro HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if payload is None:
            return UpstreamResult(
                False,
                error="Resposta inválida da API externa",
                status_code=response.status_code,
            )

        success = resolve_success(payload)
        error = payload.get("erro") if isinstance(payload, dict) else None
        return UpstreamResult(
            success,
            payload=payload,
            error=error,
            status_code=response.status_code,
        )
