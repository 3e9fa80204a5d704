"""
Registro imutável de decisões do pipeline de consultas.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from sentinela.db.base import Base


class AuditLog(Base):
    """Auditoria de consultas e operações administrativas."""

    __tablename__ = "audit_logs"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    api_key_ref = Column(String(64), nullable=False)
    acao = Column(String(80), nullable=False, index=True)
    tipo = Column(String(20), nullable=True)
    ip = Column(String(100), nullable=True)
    user_agent = Column(String(500), nullable=True)
    sucesso = Column(Boolean, nullable=False, default=True)
    severity = Column(String(20), nullable=False, default="info")
    # Blob JSON opaco; campos sensíveis já chegam mascarados
    detalhes = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_audit_logs_acao_created_at", "acao", "created_at"),
    )
