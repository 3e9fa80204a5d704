"""
Pipeline de admissão de consultas.

Sequência estrita, interrompida na primeira falha:

    credencial -> validação da chave -> quota -> tipo -> formato
    -> flood -> cache -> API externa -> integridade -> cache -> auditoria

Falhas das etapas de admissão viram ``ConsultaError`` (fatal para a
request, nunca para o processo). Falhas da API externa não são exceção:
viram uma resposta normal com ``success=false``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from sentinela.core import errors
from sentinela.core.clock import Clock, SystemClock
from sentinela.core.errors import ConsultaError
from sentinela.core.logging import bind_request_context, get_logger
from sentinela.core.metrics import record_consulta
from sentinela.schemas.consulta import ConsultaResponse
from sentinela.security.anti_replay import NonceLedger
from sentinela.security.anti_sql import (
    TIPOS_VALIDOS,
    mask_value,
    normalize_query,
    validate_shape,
)
from sentinela.security.integrity import assess_package_risk
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService
from sentinela.services.cache_service import (
    CachedConsulta,
    ConsultaCacheService,
    normalize_cache_query,
)
from sentinela.services.key_registry import Credential, KeyRegistry, KeyRegistryError
from sentinela.services.upstream_client import WorldEcletixClient

logger = get_logger(__name__)


def _log_detached_failure(task: "asyncio.Future[Any]") -> None:
    """Recolhe a exceção da consulta blindada quando o cliente já desconectou."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("consulta.fetch_failed", error=str(exc), error_type=type(exc).__name__)


@dataclass(frozen=True)
class ConsultaRequest:
    """Dados da request HTTP relevantes para o pipeline."""

    api_key: Optional[str]
    tipo: Optional[str]
    params: dict[str, str] = field(default_factory=dict)
    client_ip: str = "unknown"
    user_agent: str = "unknown"
    accept: Optional[str] = None
    accept_encoding: Optional[str] = None
    accept_language: Optional[str] = None
    method: str = "GET"
    path: str = "/api/v1/consultas"

    def raw_value(self, tipo: str) -> Optional[str]:
        if tipo == "cpf":
            return self.params.get("cpf")
        return self.params.get("q")


class AdmissionPipeline:
    """Orquestra registro de chaves, ledger, heurísticas, cache e auditoria."""

    def __init__(
        self,
        registry: KeyRegistry,
        ledger: NonceLedger,
        cache: ConsultaCacheService,
        upstream: WorldEcletixClient,
        audit: AuditService,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.cache = cache
        self.upstream = upstream
        self.audit = audit
        self.clock = clock or SystemClock()

    async def run(self, request: ConsultaRequest) -> ConsultaResponse:
        started = time.perf_counter()

        if not request.api_key:
            record_consulta(request.tipo, "missing_key")
            await self._audit(request, audit_actions.UNAUTHORIZED_ACCESS, None, False,
                              {"error": "API-KEY não fornecida"})
            raise ConsultaError(errors.MISSING_API_KEY, "API-KEY não fornecida", 401)

        try:
            credential = await self.registry.validate(request.api_key)
        except KeyRegistryError as exc:
            record_consulta(request.tipo, "invalid_key")
            await self._audit(request, audit_actions.UNAUTHORIZED_ACCESS, None, False,
                              {"error": exc.message})
            raise ConsultaError(errors.INVALID_API_KEY, exc.message, 401) from exc

        with bind_request_context(key_ref=credential.key_ref):
            return await self._admit(request, credential, started)

    async def _admit(
        self,
        request: ConsultaRequest,
        credential: Credential,
        started: float,
    ) -> ConsultaResponse:
        try:
            quota = await self.registry.check_and_increment(
                request.api_key, request.client_ip, request.user_agent
            )
        except KeyRegistryError as exc:
            # Chave desativada ou removida entre a validação e o consumo
            record_consulta(request.tipo, "invalid_key")
            raise ConsultaError(errors.INVALID_API_KEY, exc.message, 401) from exc

        if not quota.allowed:
            record_consulta(request.tipo, "rate_limited")
            raise ConsultaError(
                errors.RATE_LIMIT_EXCEEDED,
                quota.error or "Limite de requisições excedido",
                429,
                {"remainingHour": quota.remaining_hour, "remainingDay": quota.remaining_day},
            )

        tipo_check = validate_shape(request.tipo, "tipo")
        if not tipo_check.is_valid:
            record_consulta(request.tipo, "invalid_tipo")
            await self._audit(request, audit_actions.INVALID_TIPO, None, False,
                              {"error": tipo_check.error})
            raise ConsultaError(
                errors.INVALID_TYPE,
                tipo_check.error,
                400,
                {"tiposDisponiveis": list(TIPOS_VALIDOS)},
            )
        tipo = request.tipo.lower()

        raw_value = request.raw_value(tipo)
        shape = validate_shape(raw_value, tipo)
        if not shape.is_valid:
            record_consulta(tipo, "invalid_input")
            details = {"error": shape.error, "valor": mask_value(raw_value or "")}
            await self._audit(request, audit_actions.INVALID_INPUT_VALIDATION, tipo, False, details)
            if shape.sql_risk:
                logger.warning("consulta.sql_injection_detected", tipo=tipo)
                await self._audit(request, audit_actions.SQL_INJECTION_DETECTED, tipo, False, details)
            raise ConsultaError(errors.VALIDATION_ERROR, shape.error, 400)

        query = normalize_query(tipo, raw_value)
        await self._check_flood(request, tipo, query)

        cached = await self.cache.get(tipo, query)
        if cached is not None:
            return await self._respond_from_cache(request, tipo, cached)

        # A consulta externa, a escrita no cache e a auditoria seguem mesmo
        # se o cliente desconectar.
        task = asyncio.ensure_future(self._fetch_and_store(request, tipo, query, started))
        task.add_done_callback(_log_detached_failure)
        return await asyncio.shield(task)

    async def _check_flood(self, request: ConsultaRequest, tipo: str, query: str) -> None:
        fingerprint = self.ledger.fingerprint(
            request.client_ip,
            request.user_agent,
            request.accept,
            request.accept_encoding,
            request.accept_language,
        )
        device = self.ledger.device_fingerprint(
            request.user_agent,
            request.accept,
            request.accept_encoding,
            request.accept_language,
        )
        await self.ledger.track_fingerprint(device, request.client_ip)

        signature = self.ledger.request_signature(
            request.method,
            request.path,
            tipo,
            normalize_cache_query(query),
            fingerprint,
        )
        flood = await self.ledger.check_flood(signature, request.client_ip)
        if flood.is_flooding:
            record_consulta(tipo, "flood")
            await self._audit(request, audit_actions.FLOOD_ATTACK_DETECTED, tipo, False,
                              {"requestCount": flood.count})
            raise ConsultaError(
                errors.FLOOD_DETECTED,
                f"Muitas requisições idênticas ({flood.count}). Aguarde antes de repetir.",
                429,
            )

    async def _respond_from_cache(
        self,
        request: ConsultaRequest,
        tipo: str,
        cached: CachedConsulta,
    ) -> ConsultaResponse:
        tempo = int(cached.tempo_resposta or 0)
        cache_age = int((self.clock.now() - cached.created_at).total_seconds() * 1000)

        await self._audit(request, audit_actions.CACHE_HIT, tipo, True, {
            "cached": True,
            "hitCount": cached.hit_count,
            "tempo": tempo,
        })
        record_consulta(tipo, "cache_hit")
        logger.info("consulta.cache_hit", tipo=tipo, hit_count=cached.hit_count)

        return ConsultaResponse(
            success=True,
            data=cached.resultado,
            tempoResposta=tempo,
            fromCache=True,
            hitCount=cached.hit_count,
            cacheAge=max(cache_age, 0),
            warnings=[],
        )

    async def _fetch_and_store(
        self,
        request: ConsultaRequest,
        tipo: str,
        query: str,
        started: float,
    ) -> ConsultaResponse:
        result = await self.upstream.fetch(tipo, query)

        integrity: Optional[dict[str, Any]] = None
        warnings: list[str] = []
        if not result.success and result.payload is not None:
            report = assess_package_risk(result.payload, tipo)
            integrity = report.to_dict()
            warnings = list(report.issues)
            if report.risk_level.value == "CRITICAL":
                logger.warning("consulta.integrity_critical", tipo=tipo, issues=report.issues)

        tempo = int((time.perf_counter() - started) * 1000)

        if result.success:
            await self.cache.put(tipo, query, result.payload, True, tempo)

        await self._audit(request, audit_actions.CONSULTA, tipo, result.success, {
            "query": mask_value(query),
            "tempo": tempo,
            "cached": False,
            "integrity": integrity,
            "error": result.error,
        })
        record_consulta(tipo, "ok" if result.success else "upstream_error")
        logger.info(
            "consulta.completed",
            tipo=tipo,
            success=result.success,
            tempo_ms=tempo,
        )

        return ConsultaResponse(
            success=result.success,
            data=result.payload if result.success else None,
            tempoResposta=tempo,
            fromCache=False,
            error=None if result.success else (result.error or "Consulta sem resultado"),
            integrity=integrity,
            warnings=warnings,
        )

    async def _audit(
        self,
        request: ConsultaRequest,
        acao: str,
        tipo: Optional[str],
        sucesso: bool,
        details: dict[str, Any],
    ) -> None:
        await self.audit.record(
            request.api_key,
            acao,
            tipo,
            request.client_ip,
            request.user_agent,
            sucesso,
            details,
        )
