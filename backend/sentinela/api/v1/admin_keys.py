"""
Endpoints administrativos de gestão de API-KEYs.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from starlette.requests import Request

from sentinela.api.deps import (
    get_audit_service,
    get_key_registry,
    get_nonce_ledger,
    guard_admin_mutation,
    require_admin,
)
from sentinela.core import errors
from sentinela.core.errors import ConsultaError
from sentinela.core.security import ADMIN_KEY_SENTINEL
from sentinela.schemas.api_key import (
    ApiKeyActionResponse,
    ApiKeyCreate,
    ApiKeyCreatedResponse,
    ApiKeyItem,
    ApiKeyListResponse,
)
from sentinela.security.anti_replay import NonceLedger
from sentinela.services.audit_service import AuditService
from sentinela.services.key_registry import (
    AdminCredential,
    KeyNotFound,
    KeyRegistry,
    KeyValidationError,
    PermissionDenied,
)

router = APIRouter(
    prefix="/admin/keys",
    tags=["Admin - API Keys"],
)


def _translate_not_found(exc: KeyNotFound) -> ConsultaError:
    return ConsultaError(errors.NOT_FOUND, exc.message, 404)


@router.get(
    "",
    response_model=ApiKeyListResponse,
    summary="Listar API-KEYs",
)
async def list_keys(
    _: AdminCredential = Depends(require_admin),
    registry: KeyRegistry = Depends(get_key_registry),
) -> ApiKeyListResponse:
    records = await registry.list()
    return ApiKeyListResponse(keys=[ApiKeyItem.from_record(record) for record in records])


@router.post(
    "",
    response_model=ApiKeyCreatedResponse,
    status_code=201,
    summary="Criar API-KEY",
    description="""
    Gera um token aleatório de 32 caracteres. O token em claro só é
    devolvido nesta resposta.
    """,
)
async def create_key(
    payload: ApiKeyCreate,
    request: Request,
    _: AdminCredential = Depends(require_admin),
    registry: KeyRegistry = Depends(get_key_registry),
    ledger: NonceLedger = Depends(get_nonce_ledger),
    audit: AuditService = Depends(get_audit_service),
) -> ApiKeyCreatedResponse:
    nonce = await guard_admin_mutation(request, ledger, audit, check_replay=False)
    try:
        record, token = await registry.create(
            payload.nome,
            payload.tipo,
            payload.rateLimit,
            payload.dailyLimit,
            created_by=ADMIN_KEY_SENTINEL,
        )
    except KeyValidationError as exc:
        raise ConsultaError(errors.VALIDATION_ERROR, exc.message, 400) from exc

    if nonce:
        await ledger.consume(nonce)
    item = ApiKeyItem.from_record(record).model_copy(update={"key": "***" + token[-4:]})
    return ApiKeyCreatedResponse(key=token, item=item)


@router.patch(
    "/{key_id}",
    response_model=ApiKeyActionResponse,
    summary="Ativar/desativar API-KEY",
)
async def toggle_key(
    key_id: uuid.UUID,
    request: Request,
    _: AdminCredential = Depends(require_admin),
    registry: KeyRegistry = Depends(get_key_registry),
    ledger: NonceLedger = Depends(get_nonce_ledger),
    audit: AuditService = Depends(get_audit_service),
) -> ApiKeyActionResponse:
    nonce = await guard_admin_mutation(request, ledger, audit)
    try:
        record = await registry.toggle(key_id, actor=ADMIN_KEY_SENTINEL)
    except KeyNotFound as exc:
        raise _translate_not_found(exc) from exc

    if nonce:
        await ledger.consume(nonce)
    status_label = "ativada" if record.ativo else "desativada"
    return ApiKeyActionResponse(
        message=f"API-KEY {status_label}",
        item=ApiKeyItem.from_record(record).model_copy(update={"key": "****"}),
    )


@router.delete(
    "/{key_id}",
    response_model=ApiKeyActionResponse,
    summary="Remover API-KEY",
)
async def delete_key(
    key_id: uuid.UUID,
    request: Request,
    _: AdminCredential = Depends(require_admin),
    registry: KeyRegistry = Depends(get_key_registry),
    ledger: NonceLedger = Depends(get_nonce_ledger),
    audit: AuditService = Depends(get_audit_service),
) -> ApiKeyActionResponse:
    nonce = await guard_admin_mutation(request, ledger, audit)
    try:
        await registry.delete(key_id, actor=ADMIN_KEY_SENTINEL)
    except KeyNotFound as exc:
        raise _translate_not_found(exc) from exc
    except PermissionDenied as exc:
        raise ConsultaError(errors.FORBIDDEN, exc.message, 403) from exc

    if nonce:
        await ledger.consume(nonce)
    return ApiKeyActionResponse(message="API-KEY removida")
