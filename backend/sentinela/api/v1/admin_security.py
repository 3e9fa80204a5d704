"""
Endpoints administrativos de segurança (status, manutenção, nonce e auditoria).
"""

from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request

from sentinela.api.deps import (
    get_audit_service,
    get_cache_service,
    get_nonce_ledger,
    get_security_report_service,
    require_admin,
)
from sentinela.config import get_settings
from sentinela.core.security import (
    ADMIN_KEY_SENTINEL,
    extract_client_ip,
    extract_user_agent,
)
from sentinela.db.stores.records import AuditRecord
from sentinela.schemas.audit import AuditLogItem, AuditLogListResponse
from sentinela.schemas.security import (
    NonceResponse,
    SecurityActionRequest,
    SecurityActionResponse,
)
from sentinela.security.anti_replay import NonceLedger
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService
from sentinela.services.cache_service import ConsultaCacheService
from sentinela.services.key_registry import AdminCredential
from sentinela.services.security_report import SecurityReportService
from sentinela.tasks.maintenance import purge_expired_audit_logs

router = APIRouter(
    prefix="/admin",
    tags=["Admin - Segurança"],
)


@router.get(
    "/security",
    response_model=dict,
    summary="Status de segurança",
    description="""
    Threat score, contadores de ataques, estado dos sistemas de proteção,
    métricas do cache e os eventos de segurança mais recentes.
    """,
)
async def security_status(
    _: AdminCredential = Depends(require_admin),
    report: SecurityReportService = Depends(get_security_report_service),
) -> dict:
    return await report.build()


@router.post(
    "/security",
    response_model=SecurityActionResponse,
    summary="Executar manutenção de segurança",
)
async def security_action(
    payload: SecurityActionRequest,
    request: Request,
    _: AdminCredential = Depends(require_admin),
    ledger: NonceLedger = Depends(get_nonce_ledger),
    cache: ConsultaCacheService = Depends(get_cache_service),
    audit: AuditService = Depends(get_audit_service),
) -> SecurityActionResponse:
    """Limpa nonces, ledger ou cache conforme a ação pedida."""
    if payload.action == "clear_expired_nonces":
        affected = await ledger.sweep_expired()
        message = f"{affected} nonce(s) expirado(s) removido(s)"
    elif payload.action == "clear_security_cache":
        before = await ledger.stats()
        await ledger.clear_all()
        affected = before.total_nonces + before.total_fingerprints
        message = "Ledger de segurança limpo"
    elif payload.action == "clear_all_cache":
        affected = await cache.flush_all()
        message = f"{affected} entrada(s) de cache removida(s)"
    else:
        affected = await cache.sweep_expired()
        message = f"{affected} entrada(s) expirada(s) de cache removida(s)"

    await audit.record(
        ADMIN_KEY_SENTINEL,
        audit_actions.SECURITY_MAINTENANCE,
        "admin",
        extract_client_ip(request),
        extract_user_agent(request),
        True,
        {"action": payload.action, "affected": affected},
    )
    return SecurityActionResponse(action=payload.action, message=message, affected=affected)


@router.get(
    "/security/nonce",
    response_model=NonceResponse,
    summary="Gerar nonce para mutações administrativas",
    description="""
    O nonce deve ser enviado no header `x-request-nonce` das requisições
    PATCH/DELETE de chaves.
    """,
)
async def issue_nonce(
    _: AdminCredential = Depends(require_admin),
    ledger: NonceLedger = Depends(get_nonce_ledger),
) -> NonceResponse:
    return NonceResponse(
        nonce=ledger.issue(),
        ttlMs=get_settings().security_nonce_ttl_ms,
    )


def _audit_item(record: AuditRecord) -> AuditLogItem:
    try:
        detalhes = json.loads(record.detalhes) if record.detalhes else {}
    except ValueError:
        detalhes = {"raw": record.detalhes}
    if not isinstance(detalhes, dict):
        detalhes = {"value": detalhes}

    return AuditLogItem(
        id=str(record.id),
        apiKeyRef=record.api_key_ref,
        acao=record.acao,
        tipo=record.tipo,
        ip=record.ip,
        userAgent=record.user_agent,
        sucesso=record.sucesso,
        severity=record.severity,
        detalhes=detalhes,
        createdAt=record.created_at,
    )


@router.get(
    "/audit-logs",
    response_model=AuditLogListResponse,
    summary="Consultar logs de auditoria",
    description="""
    Suporta paginação e filtros por `acao`, `tipo` e `sucesso`.
    """,
)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    acao: Optional[str] = Query(None),
    tipo: Optional[str] = Query(None),
    sucesso: Optional[bool] = Query(None),
    _: AdminCredential = Depends(require_admin),
    audit: AuditService = Depends(get_audit_service),
) -> AuditLogListResponse:
    """Lista logs de auditoria com paginação."""
    items, total = await audit.list_logs(
        page=page,
        page_size=page_size,
        acao=acao,
        tipo=tipo,
        sucesso=sucesso,
    )

    page_count = (total + page_size - 1) // page_size
    return AuditLogListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=page_count,
        items=[_audit_item(item) for item in items],
    )


@router.post(
    "/audit-logs/purge-task",
    response_model=dict,
    summary="Enfileirar purge de logs no Celery",
)
async def purge_audit_logs_task(
    _: AdminCredential = Depends(require_admin),
) -> dict:
    """Dispara purge via Celery para não bloquear request."""
    result = purge_expired_audit_logs.delay()
    return {"queued": True, "taskId": result.id}
