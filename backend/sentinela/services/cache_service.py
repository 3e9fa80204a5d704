"""Cache durável de resultados da API externa.

Objetivo:
  - normalizar a chave de consulta (trim + uppercase) em um único lugar
  - aplicar duração por tipo (dados de CPF mudam pouco; busca por nome muda muito)
  - expor manutenção e estatísticas para o painel administrativo
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sentinela.config import get_settings
from sentinela.core.clock import Clock, SystemClock
from sentinela.core.logging import get_logger
from sentinela.core.metrics import record_cache_hit, record_cache_miss
from sentinela.db.stores.consulta_cache_store import ConsultaCacheStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedConsulta:
    tipo: str
    query: str
    resultado: Any
    sucesso: bool
    tempo_resposta: Optional[int]
    hit_count: int
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    count_by_type: dict[str, int]
    expired_count: int
    hit_rate_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEntries": self.total_entries,
            "byType": dict(self.count_by_type),
            "expiredCount": self.expired_count,
            "hitRate": self.hit_rate_percent,
        }


def normalize_cache_query(query: str) -> str:
    return (query or "").strip().upper()


class ConsultaCacheService:
    """Cache de consultas por (tipo, query normalizada)."""

    def __init__(self, store: ConsultaCacheStore, clock: Optional[Clock] = None):
        settings = get_settings()
        self.store = store
        self.clock = clock or SystemClock()
        self._durations = {
            "cpf": timedelta(seconds=settings.cache_ttl_cpf_seconds),
            "numero": timedelta(seconds=settings.cache_ttl_numero_seconds),
            "nome": timedelta(seconds=settings.cache_ttl_nome_seconds),
        }

    def duration_for(self, tipo: str) -> timedelta:
        return self._durations.get(tipo, self._durations["nome"])

    async def get(self, tipo: str, query: str) -> Optional[CachedConsulta]:
        """Busca entrada viva; cada leitura incrementa ``hit_count``."""
        normalized = normalize_cache_query(query)
        record = await self.store.hit(tipo, normalized, self.clock.now())
        if record is None:
            record_cache_miss(tipo)
            return None

        record_cache_hit(tipo)
        return CachedConsulta(
            tipo=record.tipo,
            query=record.query,
            resultado=record.resultado,
            sucesso=record.sucesso,
            tempo_resposta=record.tempo_resposta,
            hit_count=record.hit_count,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )

    async def put(
        self,
        tipo: str,
        query: str,
        resultado: Any,
        sucesso: bool,
        tempo_resposta: Optional[int],
    ) -> None:
        """Grava ou renova a entrada (refresh-on-write)."""
        normalized = normalize_cache_query(query)
        now = self.clock.now()
        duration = self.duration_for(tipo)
        await self.store.upsert(
            tipo=tipo,
            query=normalized,
            resultado=resultado,
            sucesso=sucesso,
            tempo_resposta=tempo_resposta,
            now=now,
            expires_at=now + duration,
        )
        logger.info(
            "cache.stored",
            tipo=tipo,
            expires_in_seconds=int(duration.total_seconds()),
        )

    async def sweep_expired(self) -> int:
        removed = await self.store.delete_expired(self.clock.now())
        logger.info("cache.expired_removed", removed=removed)
        return removed

    async def flush_all(self) -> int:
        removed = await self.store.delete_all()
        logger.warning("cache.flushed", removed=removed)
        return removed

    async def stats(self) -> CacheStats:
        """
        Estatísticas agregadas.

        ``hit_rate_percent`` é soma de hits / entradas * 100 (taxa de
        reaproveitamento por entrada retida, pode passar de 100).
        """
        counts = await self.store.counts(self.clock.now())
        hit_rate = 0.0
        if counts.total_entries > 0:
            hit_rate = round(counts.total_hits / counts.total_entries * 100, 2)
        return CacheStats(
            total_entries=counts.total_entries,
            count_by_type=counts.count_by_type,
            expired_count=counts.expired_count,
            hit_rate_percent=hit_rate,
        )
