"""
Módulo de Segurança - credenciais, tokens e extração de identidade do cliente.

Funções para comparar a chave de administrador sem vazamento por tempo,
gerar tokens aleatórios e mascarar credenciais antes de qualquer log.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Optional

from starlette.requests import Request

from sentinela.config import get_settings

ADMIN_KEY_SENTINEL = "ADMIN_KEY"
ANONYMOUS_KEY_REF = "anonymous"

API_KEY_HEADER = "x-api-key"
API_KEY_QUERY_PARAM = "apiKey"
API_KEY_COOKIE = "apiKey"
ADMIN_KEY_HEADER = "x-admin-key"
ADMIN_KEY_COOKIE = "adminKey"
ADMIN_KEY_QUERY_PARAM = "adminKey"


def constant_time_equals(left: str, right: str) -> bool:
    """Compara duas strings sem saída antecipada no primeiro byte divergente."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def is_admin_key(token: Optional[str]) -> bool:
    """Verifica se o token apresentado é a credencial de administrador."""
    if not token:
        return False
    return constant_time_equals(token, get_settings().admin_key)


def generate_token(length: int = 32) -> str:
    """
    Gera token hexadecimal criptograficamente seguro.

    Args:
        length: Quantidade de caracteres do token

    Returns:
        Token com exatamente ``length`` caracteres
    """
    return secrets.token_hex((length + 1) // 2)[:length]


def mask_token(token: Optional[str]) -> str:
    """Mascara credencial mantendo 4 caracteres iniciais e 4 finais."""
    if not token:
        return ANONYMOUS_KEY_REF
    if token == ADMIN_KEY_SENTINEL or is_admin_key(token):
        return ADMIN_KEY_SENTINEL
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}****{token[-4:]}"


def extract_api_key(request: Request) -> Optional[str]:
    """
    Extrai a credencial da request.

    Prioridade: header ``x-api-key``, query ``apiKey``, cookie ``apiKey``.
    """
    return (
        request.headers.get(API_KEY_HEADER)
        or request.query_params.get(API_KEY_QUERY_PARAM)
        or request.cookies.get(API_KEY_COOKIE)
    )


def extract_admin_key(request: Request) -> Optional[str]:
    """Extrai a chave de administrador (header, cookie ou query)."""
    return (
        request.headers.get(ADMIN_KEY_HEADER)
        or request.cookies.get(ADMIN_KEY_COOKIE)
        or request.query_params.get(ADMIN_KEY_QUERY_PARAM)
    )


def extract_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def extract_user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"
