"""
Persistência do registro de chaves de acesso.

O consumo de quota é uma única instrução ``UPDATE ... WHERE ... RETURNING``
condicionada aos limites: duas requisições concorrentes na última unidade de
quota nunca são ambas aceitas.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentinela.db.models.api_key import ApiKey
from sentinela.db.stores.records import ApiKeyRecord

HOUR_WINDOW = timedelta(hours=1)
DAY_WINDOW = timedelta(days=1)


def _to_record(row: ApiKey) -> ApiKeyRecord:
    return ApiKeyRecord(
        id=row.id,
        key=row.key,
        nome=row.nome,
        tipo=row.tipo,
        ativo=bool(row.ativo),
        rate_limit=int(row.rate_limit),
        daily_limit=int(row.daily_limit),
        total_requests=int(row.total_requests or 0),
        used_this_hour=int(row.used_this_hour or 0),
        used_today=int(row.used_today or 0),
        last_reset_hour=row.last_reset_hour,
        last_reset_day=row.last_reset_day,
        expires_at=row.expires_at,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ApiKeyStore:
    """Acesso assíncrono à tabela ``api_keys``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_key(self, token: str) -> Optional[ApiKeyRecord]:
        async with self._session_factory() as db:
            result = await db.execute(select(ApiKey).where(ApiKey.key == token))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def get_by_id(self, key_id: uuid.UUID) -> Optional[ApiKeyRecord]:
        async with self._session_factory() as db:
            row = await db.get(ApiKey, key_id)
            return _to_record(row) if row else None

    async def list_all(self) -> list[ApiKeyRecord]:
        async with self._session_factory() as db:
            result = await db.execute(select(ApiKey).order_by(ApiKey.created_at.desc()))
            return [_to_record(row) for row in result.scalars().all()]

    async def count(self, *, active_only: bool = False) -> int:
        stmt = select(func.count()).select_from(ApiKey)
        if active_only:
            stmt = stmt.where(ApiKey.ativo.is_(True))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return int(result.scalar_one() or 0)

    async def insert(
        self,
        *,
        key: str,
        nome: str,
        tipo: str,
        rate_limit: int,
        daily_limit: int,
        created_by: Optional[str],
        now: datetime,
        expires_at: Optional[datetime] = None,
    ) -> ApiKeyRecord:
        row = ApiKey(
            id=uuid.uuid4(),
            key=key,
            nome=nome,
            tipo=tipo,
            ativo=True,
            rate_limit=rate_limit,
            daily_limit=daily_limit,
            total_requests=0,
            used_this_hour=0,
            used_today=0,
            last_reset_hour=now,
            last_reset_day=now,
            expires_at=expires_at,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _to_record(row)

    async def reset_windows(self, key_id: uuid.UUID, now: datetime) -> None:
        """Zera os contadores cujas janelas já venceram (reset preguiçoso)."""
        hour_stmt = (
            update(ApiKey)
            .where(
                ApiKey.id == key_id,
                or_(
                    ApiKey.last_reset_hour.is_(None),
                    ApiKey.last_reset_hour <= now - HOUR_WINDOW,
                ),
            )
            .values(used_this_hour=0, last_reset_hour=now)
        )
        day_stmt = (
            update(ApiKey)
            .where(
                ApiKey.id == key_id,
                or_(
                    ApiKey.last_reset_day.is_(None),
                    ApiKey.last_reset_day <= now - DAY_WINDOW,
                ),
            )
            .values(used_today=0, last_reset_day=now)
        )
        async with self._session_factory() as db:
            await db.execute(hour_stmt)
            await db.execute(day_stmt)
            await db.commit()

    async def try_consume(self, key_id: uuid.UUID, now: datetime) -> Optional[ApiKeyRecord]:
        """
        Incrementa os contadores somente se ambas as quotas comportarem +1.

        Returns:
            Registro atualizado, ou None quando a quota foi rejeitada
        """
        stmt = (
            update(ApiKey)
            .where(
                ApiKey.id == key_id,
                ApiKey.ativo.is_(True),
                ApiKey.used_this_hour < ApiKey.rate_limit,
                ApiKey.used_today < ApiKey.daily_limit,
            )
            .values(
                used_this_hour=ApiKey.used_this_hour + 1,
                used_today=ApiKey.used_today + 1,
                total_requests=ApiKey.total_requests + 1,
                updated_at=now,
            )
            .returning(ApiKey)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            record = _to_record(row) if row else None
            await db.commit()
            return record

    async def set_active(self, key_id: uuid.UUID, ativo: bool, now: datetime) -> Optional[ApiKeyRecord]:
        stmt = (
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(ativo=ativo, updated_at=now)
            .returning(ApiKey)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            record = _to_record(row) if row else None
            await db.commit()
            return record

    async def delete(self, key_id: uuid.UUID) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(delete(ApiKey).where(ApiKey.id == key_id))
            await db.commit()
            return bool(result.rowcount)
