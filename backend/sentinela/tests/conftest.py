"""Configuração global do pytest para os testes do backend.

Seta variáveis de ambiente mínimas ANTES que qualquer módulo do pacote seja
importado: ``Settings`` exige ``ADMIN_KEY`` e o engine assíncrono é criado
no import de ``sentinela.db.base`` (sem abrir conexão).
"""
from __future__ import annotations

import os

ADMIN_KEY = "test-admin-key-0123456789abcdef"


def _set_env_defaults() -> None:
    """Seta variáveis de ambiente mínimas para que pydantic Settings não falhe."""
    defaults = {
        "ADMIN_KEY": ADMIN_KEY,
        "DEBUG": "false",
        "POSTGRES_POOL_SIZE": "1",
        "POSTGRES_MAX_OVERFLOW": "0",
        "LEDGER_BACKEND": "memory",
        "EXTERNAL_API_URL": "https://upstream.test",
        "CELERY_BROKER_URL": "redis://localhost:6379/1",
        "CELERY_RESULT_BACKEND": "redis://localhost:6379/2",
    }
    for key, val in defaults.items():
        os.environ.setdefault(key, val)


def _configure_celery_eager() -> None:
    """Executa tasks inline, sem broker/Redis."""
    from sentinela.tasks.celery_app import celery_app

    celery_app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
        result_backend="cache+memory://",
        broker_url="memory://",
    )


_set_env_defaults()
_configure_celery_eager()
