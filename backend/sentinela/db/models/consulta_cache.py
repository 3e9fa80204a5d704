"""
Cache durável de resultados da API externa.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from sentinela.db.base import Base


class ConsultaCache(Base):
    """Resultado memorizado por (tipo, query normalizada)."""

    __tablename__ = "consulta_cache"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tipo = Column(String(20), nullable=False)
    query = Column(String(255), nullable=False)
    resultado = Column(JSONB, nullable=True)
    sucesso = Column(Boolean, nullable=False, default=True)
    tempo_resposta = Column(Integer, nullable=True)
    hit_count = Column(Integer, nullable=False, default=0)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("tipo", "query", name="uq_consulta_cache_tipo_query"),
        Index("ix_consulta_cache_tipo", "tipo"),
    )
