"""
Registros imutáveis devolvidos pelos stores.

Os serviços nunca manipulam instâncias ORM diretamente; recebem estes
snapshots, o que permite trocar o armazenamento (ex.: fakes em memória nos
testes) sem alterar a lógica de negócio.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class ApiKeyRecord:
    id: uuid.UUID
    key: str
    nome: str
    tipo: str
    ativo: bool
    rate_limit: int
    daily_limit: int
    total_requests: int
    used_this_hour: int
    used_today: int
    last_reset_hour: Optional[datetime]
    last_reset_day: Optional[datetime]
    expires_at: Optional[datetime]
    created_by: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class CacheRecord:
    tipo: str
    query: str
    resultado: Any
    sucesso: bool
    tempo_resposta: Optional[int]
    hit_count: int
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CacheCounts:
    """Agregados brutos da tabela de cache."""

    total_entries: int
    count_by_type: dict[str, int]
    expired_count: int
    total_hits: int


@dataclass(frozen=True)
class AuditRecord:
    id: uuid.UUID
    api_key_ref: str
    acao: str
    tipo: Optional[str]
    ip: Optional[str]
    user_agent: Optional[str]
    sucesso: bool
    severity: str
    detalhes: Optional[str]
    created_at: datetime
