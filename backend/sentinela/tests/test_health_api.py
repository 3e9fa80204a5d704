"""Testes para os endpoints de health check, métricas e tratamento de erros."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI

from sentinela.core.errors import ConsultaError, register_exception_handlers
from sentinela.tests.http_test_client import make_sync_asgi_client

CONNECTED = {"status": "connected"}


def _app_with_health_checks(monkeypatch, postgres=CONNECTED, redis=CONNECTED) -> FastAPI:
    """App principal com checagens de dependência substituídas."""
    import sentinela.main as app_module

    monkeypatch.setattr(app_module, "_check_postgres", AsyncMock(return_value=postgres))
    monkeypatch.setattr(app_module, "_check_redis", AsyncMock(return_value=redis))
    return app_module.app


def test_health_endpoint_returns_dependency_map(monkeypatch):
    client = make_sync_asgi_client(_app_with_health_checks(monkeypatch))

    resp = client.get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "healthy"
    assert payload["dependencies"]["postgres"]["status"] == "connected"
    assert payload["dependencies"]["redis"]["status"] == "connected"


def test_ready_endpoint_returns_503_when_dependency_fails(monkeypatch):
    app_main = _app_with_health_checks(
        monkeypatch,
        postgres={"status": "disconnected", "error": "connection timeout"},
    )
    client = make_sync_asgi_client(app_main)

    resp = client.get("/health/ready")

    assert resp.status_code == 503
    payload = resp.json()
    assert payload["detail"]["status"] == "unready"
    assert payload["detail"]["dependencies"]["postgres"]["status"] == "disconnected"


def test_ready_endpoint_returns_200_when_all_dependencies_ok(monkeypatch):
    client = make_sync_asgi_client(_app_with_health_checks(monkeypatch))

    resp = client.get("/health/ready")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"


def test_live_endpoint_preserves_request_id_and_timing_header(monkeypatch):
    client = make_sync_asgi_client(_app_with_health_checks(monkeypatch))

    resp = client.get("/health/live", headers={"X-Request-Id": "test-req-1"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "alive"
    assert resp.headers["X-Request-Id"] == "test-req-1"
    assert "X-Request-Duration-Ms" in resp.headers


def test_metrics_endpoint_exposes_request_counters(monkeypatch):
    client = make_sync_asgi_client(_app_with_health_checks(monkeypatch))
    client.get("/health/live")

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in resp.text
    assert 'path="/health/live"' in resp.text


def test_consulta_error_renders_structured_body():
    error = ConsultaError("RATE_LIMIT_EXCEEDED", "Limite excedido", 429, {"remainingHour": 0})

    assert error.to_payload() == {
        "success": False,
        "error": "Limite excedido",
        "code": "RATE_LIMIT_EXCEEDED",
        "remainingHour": 0,
    }


def test_unhandled_exception_becomes_internal_error_without_details():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("senha=segredo no stack")

    client = make_sync_asgi_client(app, raise_app_exceptions=False)
    resp = client.get("/boom")

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Erro interno", "code": "INTERNAL_ERROR"}
    assert "segredo" not in resp.text


@pytest.mark.asyncio
async def test_ledger_sweep_loop_survives_failures():
    from sentinela.main import ledger_sweep_loop

    calls: list[int] = []

    def _sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("redis down")
        return 0

    ledger = AsyncMock()
    ledger.sweep_expired.side_effect = _sweep

    task = asyncio.create_task(ledger_sweep_loop(ledger, 0))
    while len(calls) < 3:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(calls) >= 3
