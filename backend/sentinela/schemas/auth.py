"""
Schemas de validação de credencial.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ValidateKeyRequest(BaseModel):
    apiKey: Optional[str] = Field(None, description="Credencial a validar")


class KeyProfile(BaseModel):
    """Perfil público da credencial (sem o token)."""

    nome: str
    tipo: str
    isAdmin: bool
    key: str = Field(..., description="Credencial mascarada")
    rateLimit: Optional[int] = None
    dailyLimit: Optional[int] = None
    usedThisHour: int = 0
    usedToday: int = 0
    totalRequests: int = 0


class ValidateKeyResponse(BaseModel):
    success: bool = True
    valid: bool = True
    profile: KeyProfile
