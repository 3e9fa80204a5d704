"""
Instância Celery centralizada do Sentinela.

Configurações carregadas via ``sentinela.config.Settings``:
  - ``celery_broker_url``  → Redis db=1 (fila de mensagens)
  - ``celery_result_backend`` → Redis db=2 (resultados de tasks)

Uso:
    # Worker + beat em desenvolvimento:
    celery -A sentinela.tasks.celery_app.celery_app worker -B --loglevel=info
"""
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from sentinela.config import get_settings

settings = get_settings()

celery_app = Celery(
    "sentinela",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["sentinela.tasks.maintenance"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Manutenção é curta; nada deve passar de alguns minutos
    task_soft_time_limit=240,
    task_time_limit=300,
)

celery_app.conf.beat_schedule = {
    "sweep-expired-cache": {
        "task": "sentinela.tasks.maintenance.sweep_expired_cache",
        "schedule": crontab(minute=0),
    },
    "purge-expired-audit-logs": {
        "task": "sentinela.tasks.maintenance.purge_expired_audit_logs",
        "schedule": crontab(hour=3, minute=0),
    },
}
