"""
Schemas de administração de chaves de acesso.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from sentinela.db.stores.records import ApiKeyRecord


class ApiKeyCreate(BaseModel):
    """Payload de criação de chave."""

    nome: str = Field(..., description="Nome de exibição (3 a 50 caracteres)")
    tipo: str = Field(default="standard", description="standard, premium ou admin")
    rateLimit: int = Field(default=100, description="Quota por hora (10 a 1000)")
    dailyLimit: int = Field(default=1000, description="Quota por dia (100 a 10000)")

    @field_validator("tipo")
    @classmethod
    def _normalize_tipo(cls, value: str) -> str:
        return (value or "").strip().lower()


class ApiKeyItem(BaseModel):
    """Chave listada (token sempre mascarado)."""

    id: str
    key: str
    nome: str
    tipo: str
    isActive: bool
    rateLimit: int
    dailyLimit: int
    totalRequests: int
    usedThisHour: int
    usedToday: int
    lastResetHour: Optional[datetime] = None
    lastResetDay: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    createdBy: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ApiKeyRecord) -> "ApiKeyItem":
        return cls(
            id=str(record.id),
            key=record.key,
            nome=record.nome,
            tipo=record.tipo,
            isActive=record.ativo,
            rateLimit=record.rate_limit,
            dailyLimit=record.daily_limit,
            totalRequests=record.total_requests,
            usedThisHour=record.used_this_hour,
            usedToday=record.used_today,
            lastResetHour=record.last_reset_hour,
            lastResetDay=record.last_reset_day,
            expiresAt=record.expires_at,
            createdBy=record.created_by,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


class ApiKeyListResponse(BaseModel):
    success: bool = True
    keys: List[ApiKeyItem] = Field(default_factory=list)


class ApiKeyCreatedResponse(BaseModel):
    """Resposta de criação; o token em claro só aparece aqui."""

    success: bool = True
    key: str
    item: ApiKeyItem


class ApiKeyActionResponse(BaseModel):
    success: bool = True
    message: str
    item: Optional[ApiKeyItem] = None
