"""
Dependencies para endpoints FastAPI.

Os serviços são singletons por processo (o ledger anti-replay precisa ser
compartilhado entre requests); nos testes são trocados via
``app.dependency_overrides``.
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from starlette.requests import Request

from sentinela.core import errors
from sentinela.core.clock import Clock, SystemClock
from sentinela.core.errors import ConsultaError
from sentinela.core.logging import get_logger
from sentinela.core.security import (
    extract_admin_key,
    extract_client_ip,
    extract_user_agent,
    is_admin_key,
)
from sentinela.db.base import AsyncSessionLocal
from sentinela.db.stores.api_key_store import ApiKeyStore
from sentinela.db.stores.audit_log_store import AuditLogStore
from sentinela.db.stores.consulta_cache_store import ConsultaCacheStore
from sentinela.security.anti_replay import NonceLedger
from sentinela.security.ledger_store import LedgerStore, build_ledger_store
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService
from sentinela.services.cache_service import ConsultaCacheService
from sentinela.services.consulta_pipeline import AdmissionPipeline
from sentinela.services.key_registry import AdminCredential, KeyRegistry
from sentinela.services.security_report import SecurityReportService
from sentinela.services.upstream_client import WorldEcletixClient

logger = get_logger(__name__)

REQUEST_NONCE_HEADER = "x-request-nonce"


@lru_cache()
def get_clock() -> Clock:
    return SystemClock()


@lru_cache()
def get_api_key_store() -> ApiKeyStore:
    return ApiKeyStore(AsyncSessionLocal)


@lru_cache()
def get_consulta_cache_store() -> ConsultaCacheStore:
    return ConsultaCacheStore(AsyncSessionLocal)


@lru_cache()
def get_audit_log_store() -> AuditLogStore:
    return AuditLogStore(AsyncSessionLocal)


@lru_cache()
def get_ledger_store() -> LedgerStore:
    return build_ledger_store()


@lru_cache()
def get_nonce_ledger() -> NonceLedger:
    return NonceLedger(get_ledger_store(), get_clock())


@lru_cache()
def get_audit_service() -> AuditService:
    return AuditService(get_audit_log_store(), get_clock())


@lru_cache()
def get_key_registry() -> KeyRegistry:
    return KeyRegistry(get_api_key_store(), get_audit_service(), get_clock())


@lru_cache()
def get_cache_service() -> ConsultaCacheService:
    return ConsultaCacheService(get_consulta_cache_store(), get_clock())


@lru_cache()
def get_upstream_client() -> WorldEcletixClient:
    return WorldEcletixClient()


@lru_cache()
def get_admission_pipeline() -> AdmissionPipeline:
    return AdmissionPipeline(
        registry=get_key_registry(),
        ledger=get_nonce_ledger(),
        cache=get_cache_service(),
        upstream=get_upstream_client(),
        audit=get_audit_service(),
        clock=get_clock(),
    )


@lru_cache()
def get_security_report_service() -> SecurityReportService:
    return SecurityReportService(
        audit_store=get_audit_log_store(),
        ledger=get_nonce_ledger(),
        cache=get_cache_service(),
        registry=get_key_registry(),
        clock=get_clock(),
    )


def client_fingerprint(request: Request, ledger: NonceLedger) -> str:
    """Fingerprint do cliente a partir de IP e headers ``accept*``."""
    return ledger.fingerprint(
        extract_client_ip(request),
        extract_user_agent(request),
        request.headers.get("accept"),
        request.headers.get("accept-encoding"),
        request.headers.get("accept-language"),
    )


async def require_admin(
    request: Request,
    audit: AuditService = Depends(get_audit_service),
) -> AdminCredential:
    """Exige a credencial de administrador (header, cookie ou query)."""
    token = extract_admin_key(request)
    if is_admin_key(token):
        return AdminCredential()

    logger.warning("auth.admin_denied", path=request.url.path)
    await audit.record(
        token,
        audit_actions.UNAUTHORIZED_ACCESS,
        "admin",
        extract_client_ip(request),
        extract_user_agent(request),
        False,
        {"path": request.url.path, "method": request.method},
    )
    raise ConsultaError(
        errors.FORBIDDEN,
        "Acesso negado. Chave de administrador inválida.",
        403,
    )


async def guard_admin_mutation(
    request: Request,
    ledger: NonceLedger,
    audit: AuditService,
    *,
    check_replay: bool = True,
) -> str | None:
    """
    Anti-replay e anti-flood para mutações administrativas.

    Returns:
        Nonce explícito enviado pelo cliente (para ``consume`` após sucesso)
    """
    client_ip = extract_client_ip(request)
    user_agent = extract_user_agent(request)
    fingerprint = client_fingerprint(request, ledger)
    explicit_nonce = request.headers.get(REQUEST_NONCE_HEADER)

    if check_replay:
        nonce = explicit_nonce or f"{request.method}:{request.url.path}"
        replay = await ledger.check_replay(nonce, client_ip, fingerprint)
        if replay.is_replay:
            logger.warning("ledger.replay_detected", reason=replay.reason, path=request.url.path)
            await audit.record(
                extract_admin_key(request),
                audit_actions.REPLAY_ATTACK_DETECTED,
                "admin",
                client_ip,
                user_agent,
                False,
                {"reason": replay.reason, "path": request.url.path},
            )
            raise ConsultaError(
                errors.REPLAY_DETECTED,
                f"Ataque de replay detectado: {replay.reason}",
                429,
            )

    signature = ledger.request_signature(request.method, request.url.path, fingerprint)
    flood = await ledger.check_flood(signature, client_ip)
    if flood.is_flooding:
        await audit.record(
            extract_admin_key(request),
            audit_actions.FLOOD_ATTACK_DETECTED,
            "admin",
            client_ip,
            user_agent,
            False,
            {"requestCount": flood.count, "path": request.url.path},
        )
        raise ConsultaError(
            errors.FLOOD_DETECTED,
            f"Muitas requisições ({flood.count}). Aguarde antes de repetir.",
            429,
        )

    return explicit_nonce
