"""
Schemas de auditoria para logs de segurança.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogItem(BaseModel):
    """Item individual de log retornado para listagens."""

    id: str = Field(..., description="ID do log")
    apiKeyRef: str = Field(..., description="Referência mascarada da credencial")
    acao: str = Field(..., description="Tipo de ação auditada")
    tipo: Optional[str] = Field(None, description="Tipo de consulta")
    ip: Optional[str] = Field(None, description="IP do cliente (sanitizado)")
    userAgent: Optional[str] = Field(None, description="User agent (sanitizado)")
    sucesso: bool
    severity: str
    detalhes: Dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime = Field(..., description="Timestamp do evento")


class AuditLogListResponse(BaseModel):
    """Página de auditoria."""

    total: int = Field(..., description="Total de registros encontrados")
    page: int = Field(..., description="Página atual (1-indexed)")
    page_size: int = Field(..., description="Tamanho da página")
    total_pages: int = Field(..., description="Total de páginas")
    items: List[AuditLogItem] = Field(default_factory=list)
