"""
Schemas do painel de segurança.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

SecurityAction = Literal[
    "clear_expired_nonces",
    "clear_security_cache",
    "clear_all_cache",
    "clear_expired_cache",
]


class SecurityActionRequest(BaseModel):
    action: SecurityAction = Field(..., description="Ação de manutenção")


class SecurityActionResponse(BaseModel):
    success: bool = True
    action: str
    message: str
    affected: int = 0


class NonceResponse(BaseModel):
    success: bool = True
    nonce: str
    ttlMs: int
