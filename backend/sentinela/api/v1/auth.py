"""
Endpoint de validação de credencial.

Rota usada pelo painel para conferir uma API-KEY sem expor o token.
"""

from fastapi import APIRouter, Depends

from sentinela.api.deps import get_key_registry
from sentinela.core import errors
from sentinela.core.errors import ConsultaError
from sentinela.core.security import mask_token
from sentinela.schemas.auth import KeyProfile, ValidateKeyRequest, ValidateKeyResponse
from sentinela.services.key_registry import AdminCredential, KeyRegistry, KeyRegistryError

router = APIRouter(prefix="/auth", tags=["Authentication"])

MIN_KEY_LENGTH = 10


@router.post("/validate", response_model=ValidateKeyResponse)
async def validate_key(
    payload: ValidateKeyRequest,
    registry: KeyRegistry = Depends(get_key_registry),
):
    """
    Valida uma API-KEY e devolve o perfil público.

    Args:
        payload: Corpo com ``apiKey``
        registry: Registro de chaves

    Returns:
        Perfil da chave (nome, tipo, limites e consumo) com token mascarado
    """
    api_key = payload.apiKey
    if not api_key or len(api_key) < MIN_KEY_LENGTH:
        raise ConsultaError(
            errors.VALIDATION_ERROR,
            "API-KEY inválida ou muito curta",
            400,
            {"valid": False},
        )

    try:
        credential = await registry.validate(api_key)
    except KeyRegistryError as exc:
        raise ConsultaError(errors.INVALID_API_KEY, exc.message, 401, {"valid": False}) from exc

    if isinstance(credential, AdminCredential):
        profile = KeyProfile(
            nome=credential.nome,
            tipo=credential.tipo,
            isAdmin=True,
            key=credential.key_ref,
        )
    else:
        record = credential.record
        profile = KeyProfile(
            nome=record.nome,
            tipo=record.tipo,
            isAdmin=False,
            key=mask_token(record.key),
            rateLimit=record.rate_limit,
            dailyLimit=record.daily_limit,
            usedThisHour=record.used_this_hour,
            usedToday=record.used_today,
            totalRequests=record.total_requests,
        )

    return ValidateKeyResponse(profile=profile)
