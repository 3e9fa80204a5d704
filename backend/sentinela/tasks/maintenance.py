"""Tarefas de manutenção do armazenamento durável (cache e auditoria)."""

from __future__ import annotations

import asyncio

from sentinela.core.logging import get_logger
from sentinela.core.metrics import record_celery_task
from sentinela.db.base import AsyncSessionLocal, engine
from sentinela.db.stores.audit_log_store import AuditLogStore
from sentinela.db.stores.consulta_cache_store import ConsultaCacheStore
from sentinela.services.audit_service import AuditService
from sentinela.services.cache_service import ConsultaCacheService
from sentinela.tasks.celery_app import celery_app

logger = get_logger(__name__)


async def _with_fresh_pool(coro_factory) -> int:
    # Cada asyncio.run cria um loop novo; conexões do pool não podem atravessá-los
    try:
        return await coro_factory()
    finally:
        await engine.dispose()


def _run_counted(task_name: str, coro_factory) -> int:
    try:
        result = asyncio.run(_with_fresh_pool(coro_factory))
    except Exception:
        record_celery_task(task_name, "failure")
        logger.exception(f"maintenance.{task_name}_failed")
        raise
    record_celery_task(task_name, "success")
    return result


@celery_app.task(name="sentinela.tasks.maintenance.sweep_expired_cache")
def sweep_expired_cache() -> int:
    """Remove entradas de cache vencidas.

    Retorna a quantidade de entradas removidas.
    """
    async def _run() -> int:
        service = ConsultaCacheService(ConsultaCacheStore(AsyncSessionLocal))
        return await service.sweep_expired()

    deleted = _run_counted("sweep_expired_cache", _run)
    logger.info("maintenance.sweep_expired_cache", deleted=deleted)
    return deleted


@celery_app.task(name="sentinela.tasks.maintenance.purge_expired_audit_logs")
def purge_expired_audit_logs() -> int:
    """Executa purge de logs de auditoria já vencidos.

    Retorna a quantidade de registros removidos.
    """
    async def _run() -> int:
        service = AuditService(AuditLogStore(AsyncSessionLocal))
        return await service.purge_expired()

    deleted = _run_counted("purge_expired_audit_logs", _run)
    logger.info("maintenance.purge_expired_audit_logs", deleted=deleted)
    return deleted
