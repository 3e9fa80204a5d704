"""
Persistência append-only dos logs de auditoria.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentinela.db.models.audit_log import AuditLog
from sentinela.db.stores.records import AuditRecord


def _to_record(row: AuditLog) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        api_key_ref=row.api_key_ref,
        acao=row.acao,
        tipo=row.tipo,
        ip=row.ip,
        user_agent=row.user_agent,
        sucesso=bool(row.sucesso),
        severity=row.severity,
        detalhes=row.detalhes,
        created_at=row.created_at,
    )


def _conditions(
    acoes: Optional[Iterable[str]] = None,
    since: Optional[datetime] = None,
) -> list:
    conditions = []
    if acoes is not None:
        conditions.append(AuditLog.acao.in_(list(acoes)))
    if since is not None:
        conditions.append(AuditLog.created_at >= since)
    return conditions


class AuditLogStore:
    """Acesso assíncrono à tabela ``audit_logs``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(
        self,
        *,
        api_key_ref: str,
        acao: str,
        tipo: Optional[str],
        ip: Optional[str],
        user_agent: Optional[str],
        sucesso: bool,
        severity: str,
        detalhes: Optional[str],
        now: datetime,
    ) -> None:
        async with self._session_factory() as db:
            try:
                db.add(
                    AuditLog(
                        id=uuid.uuid4(),
                        api_key_ref=api_key_ref,
                        acao=acao,
                        tipo=tipo,
                        ip=ip,
                        user_agent=user_agent,
                        sucesso=sucesso,
                        severity=severity,
                        detalhes=detalhes,
                        created_at=now,
                    )
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def list_page(
        self,
        *,
        page: int = 1,
        page_size: int = 50,
        acao: Optional[str] = None,
        tipo: Optional[str] = None,
        sucesso: Optional[bool] = None,
    ) -> tuple[list[AuditRecord], int]:
        """Lista logs com filtros e paginação."""
        conditions = []
        if acao:
            conditions.append(AuditLog.acao == acao)
        if tipo:
            conditions.append(AuditLog.tipo == tipo)
        if sucesso is not None:
            conditions.append(AuditLog.sucesso.is_(sucesso))

        base_query = select(AuditLog)
        if conditions:
            base_query = base_query.where(and_(*conditions))
        base_query = base_query.order_by(AuditLog.created_at.desc())
        total_query = select(func.count()).select_from(base_query.subquery())

        page = max(page, 1)
        page_size = max(min(page_size, 500), 1)
        offset = (page - 1) * page_size

        async with self._session_factory() as db:
            count_result = await db.execute(total_query)
            total = int(count_result.scalar_one() or 0)
            result = await db.execute(base_query.offset(offset).limit(page_size))
            items = [_to_record(row) for row in result.scalars().all()]

        return items, total

    async def list_recent(self, acoes: Iterable[str], limit: int = 20) -> list[AuditRecord]:
        stmt = (
            select(AuditLog)
            .where(*_conditions(acoes))
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]

    async def count(
        self,
        *,
        acoes: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> int:
        stmt = select(func.count(AuditLog.id))
        conditions = _conditions(acoes, since)
        if conditions:
            stmt = stmt.where(*conditions)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return int(result.scalar_one() or 0)

    async def count_by_acao(self, acoes: Iterable[str]) -> dict[str, int]:
        acoes = list(acoes)
        stmt = (
            select(AuditLog.acao, func.count(AuditLog.id))
            .where(AuditLog.acao.in_(acoes))
            .group_by(AuditLog.acao)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            counts = {acao: int(total) for acao, total in result.all()}
        return {acao: counts.get(acao, 0) for acao in acoes}

    async def purge_older_than(self, cutoff: datetime) -> int:
        async with self._session_factory() as db:
            result = await db.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
            await db.commit()
            return int(result.rowcount or 0)
