"""Testes das stores SQLAlchemy com sessão assíncrona simulada.

As instruções enviadas à sessão são compiladas no dialeto PostgreSQL para
conferir as cláusulas que garantem atomicidade (WHERE condicional, ON
CONFLICT), sem banco real.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from sentinela.core.clock import FakeClock
from sentinela.db.stores.api_key_store import ApiKeyStore
from sentinela.db.stores.audit_log_store import AuditLogStore
from sentinela.db.stores.consulta_cache_store import ConsultaCacheStore
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class _SessionFactory:
    """Imita ``async_sessionmaker``: cada chamada entrega a mesma sessão."""

    def __init__(self, session):
        self.session = session

    def __call__(self):
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, *exc_info):
        return False


def _session(row=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def _sql(statement) -> str:
    compiled = statement.compile(dialect=postgresql.dialect())
    return " ".join(str(compiled).split())


@pytest.mark.asyncio
async def test_try_consume_is_a_single_conditional_update() -> None:
    session = _session()
    store = ApiKeyStore(_SessionFactory(session))

    record = await store.try_consume(uuid.uuid4(), NOW)

    assert record is None
    session.execute.assert_awaited_once()
    session.commit.assert_awaited_once()
    sql = _sql(session.execute.await_args.args[0])
    assert sql.startswith("UPDATE api_keys SET")
    assert "api_keys.ativo IS true" in sql
    assert "api_keys.used_this_hour < api_keys.rate_limit" in sql
    assert "api_keys.used_today < api_keys.daily_limit" in sql
    assert "used_this_hour=(api_keys.used_this_hour +" in sql
    assert "used_today=(api_keys.used_today +" in sql
    assert "RETURNING" in sql


@pytest.mark.asyncio
async def test_reset_windows_only_touches_elapsed_windows() -> None:
    session = _session()
    store = ApiKeyStore(_SessionFactory(session))

    await store.reset_windows(uuid.uuid4(), NOW)

    hour_sql, day_sql = (_sql(call.args[0]) for call in session.execute.await_args_list)
    assert "api_keys.last_reset_hour IS NULL OR api_keys.last_reset_hour <=" in hour_sql
    assert "used_this_hour=" in hour_sql
    assert "used_today=" not in hour_sql
    assert "api_keys.last_reset_day IS NULL OR api_keys.last_reset_day <=" in day_sql
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_cache_hit_increments_in_the_same_statement() -> None:
    session = _session()
    store = ConsultaCacheStore(_SessionFactory(session))

    assert await store.hit("cpf", "12345678900", NOW) is None

    sql = _sql(session.execute.await_args.args[0])
    assert sql.startswith("UPDATE consulta_cache SET")
    assert "hit_count=(consulta_cache.hit_count +" in sql
    assert "consulta_cache.expires_at >" in sql
    assert "RETURNING" in sql


@pytest.mark.asyncio
async def test_cache_upsert_conflicts_on_tipo_and_query() -> None:
    session = _session()
    store = ConsultaCacheStore(_SessionFactory(session))

    await store.upsert(
        tipo="cpf",
        query="12345678900",
        resultado={"dados": {"cpf": "12345678900"}},
        sucesso=True,
        tempo_resposta=120,
        now=NOW,
        expires_at=NOW + timedelta(hours=24),
    )

    sql = _sql(session.execute.await_args.args[0])
    assert sql.startswith("INSERT INTO consulta_cache")
    assert "ON CONFLICT (tipo, query) DO UPDATE SET" in sql
    assert "resultado = excluded.resultado" in sql
    assert "expires_at = excluded.expires_at" in sql
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_audit_append_rolls_back_and_reraises_on_commit_failure() -> None:
    session = _session()
    session.commit.side_effect = ConnectionError("postgres down")
    store = AuditLogStore(_SessionFactory(session))

    with pytest.raises(ConnectionError):
        await store.append(
            api_key_ref="ADMIN_KEY",
            acao=audit_actions.CONSULTA,
            tipo="cpf",
            ip="10.0.0.1",
            user_agent="pytest",
            sucesso=True,
            severity="info",
            detalhes=None,
            now=NOW,
        )

    session.add.assert_called_once()
    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_audit_service_swallows_store_failures() -> None:
    session = _session()
    session.commit.side_effect = ConnectionError("postgres down")
    service = AuditService(AuditLogStore(_SessionFactory(session)), FakeClock())

    await service.record(None, audit_actions.UNAUTHORIZED_ACCESS, sucesso=False)

    session.rollback.assert_awaited_once()
