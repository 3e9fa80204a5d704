"""Testes da instância Celery e das tarefas de manutenção.

Cobertura:
  TestCeleryApp         : configuração (serialização, timeouts, beat)
  TestMaintenanceTasks  : tasks chamadas via ``task.run()`` com serviços
                          substituídos, sem broker nem Postgres
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


class TestCeleryApp:
    """Valida a configuração da instância Celery sem broker real."""

    def _get_app(self):
        from sentinela.tasks.celery_app import celery_app
        return celery_app

    def test_app_name(self):
        assert self._get_app().main == "sentinela"

    def test_serializers_json(self):
        app = self._get_app()
        assert app.conf.task_serializer == "json"
        assert app.conf.result_serializer == "json"
        assert app.conf.accept_content == ["json"]

    def test_timezone_utc(self):
        app = self._get_app()
        assert app.conf.timezone == "UTC"
        assert app.conf.enable_utc is True

    def test_acks_late_and_prefetch(self):
        app = self._get_app()
        assert app.conf.task_acks_late is True
        assert app.conf.worker_prefetch_multiplier == 1

    def test_time_limits(self):
        app = self._get_app()
        assert app.conf.task_soft_time_limit == 240
        assert app.conf.task_time_limit == 300

    def test_beat_schedule_targets_registered_tasks(self):
        from sentinela.tasks import maintenance

        app = self._get_app()
        schedule = app.conf.beat_schedule
        assert schedule["sweep-expired-cache"]["task"] == maintenance.sweep_expired_cache.name
        assert schedule["purge-expired-audit-logs"]["task"] == maintenance.purge_expired_audit_logs.name
        assert maintenance.sweep_expired_cache.name in app.tasks
        assert maintenance.purge_expired_audit_logs.name in app.tasks


class TestMaintenanceTasks:
    """Executa as tasks com serviços falsos e sem descartar o pool real."""

    @pytest.fixture(autouse=True)
    def _no_pool_dispose(self, monkeypatch):
        from sentinela.tasks import maintenance

        monkeypatch.setattr(maintenance, "engine", MagicMock(dispose=AsyncMock()))

    def test_sweep_expired_cache_returns_removed_count(self, monkeypatch):
        from sentinela.tasks import maintenance

        service = MagicMock(sweep_expired=AsyncMock(return_value=4))
        monkeypatch.setattr(maintenance, "ConsultaCacheService", MagicMock(return_value=service))

        assert maintenance.sweep_expired_cache.run() == 4
        service.sweep_expired.assert_awaited_once()
        maintenance.engine.dispose.assert_awaited_once()

    def test_purge_expired_audit_logs_returns_removed_count(self, monkeypatch):
        from sentinela.tasks import maintenance

        service = MagicMock(purge_expired=AsyncMock(return_value=7))
        monkeypatch.setattr(maintenance, "AuditService", MagicMock(return_value=service))

        assert maintenance.purge_expired_audit_logs.run() == 7
        service.purge_expired.assert_awaited_once()

    def test_failure_is_counted_and_reraised(self, monkeypatch):
        from sentinela.tasks import maintenance

        service = MagicMock(purge_expired=AsyncMock(side_effect=ConnectionError("down")))
        monkeypatch.setattr(maintenance, "AuditService", MagicMock(return_value=service))

        with patch.object(maintenance, "record_celery_task") as record:
            with pytest.raises(ConnectionError):
                maintenance.purge_expired_audit_logs.run()

        record.assert_called_once_with("purge_expired_audit_logs", "failure")
        maintenance.engine.dispose.assert_awaited_once()

    def test_delay_runs_inline_in_eager_mode(self, monkeypatch):
        from sentinela.tasks import maintenance

        service = MagicMock(sweep_expired=AsyncMock(return_value=0))
        monkeypatch.setattr(maintenance, "ConsultaCacheService", MagicMock(return_value=service))

        result = maintenance.sweep_expired_cache.delay()

        assert result.get() == 0
