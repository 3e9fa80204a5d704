"""
Persistência do cache de consultas.

Leitura e incremento do contador de hits acontecem no mesmo
``UPDATE ... RETURNING``; escrita é um upsert em ``(tipo, query)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentinela.db.models.consulta_cache import ConsultaCache
from sentinela.db.stores.records import CacheCounts, CacheRecord


def _to_record(row: ConsultaCache) -> CacheRecord:
    return CacheRecord(
        tipo=row.tipo,
        query=row.query,
        resultado=row.resultado,
        sucesso=bool(row.sucesso),
        tempo_resposta=row.tempo_resposta,
        hit_count=int(row.hit_count or 0),
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class ConsultaCacheStore:
    """Acesso assíncrono à tabela ``consulta_cache``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def hit(self, tipo: str, query: str, now: datetime) -> Optional[CacheRecord]:
        """Retorna a entrada viva já com ``hit_count`` incrementado."""
        stmt = (
            update(ConsultaCache)
            .where(
                ConsultaCache.tipo == tipo,
                ConsultaCache.query == query,
                ConsultaCache.expires_at > now,
            )
            .values(hit_count=ConsultaCache.hit_count + 1)
            .returning(ConsultaCache)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            record = _to_record(row) if row else None
            await db.commit()
            return record

    async def upsert(
        self,
        *,
        tipo: str,
        query: str,
        resultado: Any,
        sucesso: bool,
        tempo_resposta: Optional[int],
        now: datetime,
        expires_at: datetime,
    ) -> None:
        stmt = insert(ConsultaCache).values(
            tipo=tipo,
            query=query,
            resultado=resultado,
            sucesso=sucesso,
            tempo_resposta=tempo_resposta,
            hit_count=0,
            created_at=now,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ConsultaCache.tipo, ConsultaCache.query],
            set_={
                "resultado": stmt.excluded.resultado,
                "sucesso": stmt.excluded.sucesso,
                "tempo_resposta": stmt.excluded.tempo_resposta,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    async def delete_expired(self, now: datetime) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(ConsultaCache).where(ConsultaCache.expires_at <= now)
            )
            await db.commit()
            return int(result.rowcount or 0)

    async def delete_all(self) -> int:
        async with self._session_factory() as db:
            result = await db.execute(delete(ConsultaCache))
            await db.commit()
            return int(result.rowcount or 0)

    async def counts(self, now: datetime) -> CacheCounts:
        async with self._session_factory() as db:
            totals = await db.execute(
                select(
                    func.count(ConsultaCache.id),
                    func.coalesce(func.sum(ConsultaCache.hit_count), 0),
                )
            )
            total_entries, total_hits = totals.one()

            by_type = await db.execute(
                select(ConsultaCache.tipo, func.count(ConsultaCache.id)).group_by(
                    ConsultaCache.tipo
                )
            )
            expired = await db.execute(
                select(func.count(ConsultaCache.id)).where(ConsultaCache.expires_at <= now)
            )

            return CacheCounts(
                total_entries=int(total_entries or 0),
                count_by_type={tipo: int(count) for tipo, count in by_type.all()},
                expired_count=int(expired.scalar_one() or 0),
                total_hits=int(total_hits or 0),
            )
