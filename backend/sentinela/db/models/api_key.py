"""
Modelo SQLAlchemy para chaves de acesso (API keys).
"""

from sqlalchemy import Column, String, Boolean, DateTime, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sentinela.db.base import Base
import uuid


TIPOS_CHAVE = ("standard", "premium", "admin")


class ApiKey(Base):
    """
    Credencial emitida para consumo do endpoint de consultas.

    Atributos:
        id: UUID único
        key: Token secreto (único)
        nome: Nome de exibição
        tipo: Categoria da chave (standard, premium, admin)
        ativo: Status da chave
        rate_limit: Quota por hora
        daily_limit: Quota por dia
        total_requests: Contador vitalício de consultas aceitas
        used_this_hour: Consumo na janela horária corrente
        used_today: Consumo na janela diária corrente
        last_reset_hour: Início da janela horária corrente
        last_reset_day: Início da janela diária corrente
        expires_at: Expiração (opcional)
        created_by: Referência de quem criou
    """

    __tablename__ = "api_keys"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String(64), unique=True, nullable=False, index=True)
    nome = Column(String(100), nullable=False)
    tipo = Column(String(20), nullable=False, default="standard")
    ativo = Column(Boolean, nullable=False, default=True, index=True)

    rate_limit = Column(Integer, nullable=False, default=100)
    daily_limit = Column(Integer, nullable=False, default=1000)
    total_requests = Column(Integer, nullable=False, default=0)
    used_this_hour = Column(Integer, nullable=False, default=0)
    used_today = Column(Integer, nullable=False, default=0)
    last_reset_hour = Column(DateTime(timezone=True), nullable=True)
    last_reset_day = Column(DateTime(timezone=True), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, nome={self.nome}, tipo={self.tipo})>"
