"""Testes do relatório agregado de segurança."""

from __future__ import annotations

import pytest

from sentinela.core.clock import FakeClock
from sentinela.security.anti_replay import LedgerStats, NonceLedger
from sentinela.security.ledger_store import MemoryLedgerStore
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService
from sentinela.services.cache_service import CacheStats, ConsultaCacheService
from sentinela.services.key_registry import KeyRegistry
from sentinela.services.security_report import (
    SecurityReportService,
    cache_efficiency,
    security_recommendations,
    threat_level,
)
from sentinela.tests.fakes import FakeApiKeyStore, FakeAuditLogStore, FakeConsultaCacheStore


@pytest.mark.parametrize(
    "score,expected",
    [(0, "BAIXO"), (20, "BAIXO"), (21, "MÉDIO"), (50, "MÉDIO"), (51, "ALTO"), (71, "CRÍTICO")],
)
def test_threat_level_thresholds(score, expected) -> None:
    assert threat_level(score) == expected


def test_cache_efficiency_thresholds() -> None:
    assert cache_efficiency(80.0) == "ALTA"
    assert cache_efficiency(60.0) == "MÉDIA"
    assert cache_efficiency(50.0) == "BAIXA"


def test_recommendations_default_when_everything_is_healthy() -> None:
    cache = CacheStats(total_entries=2, count_by_type={"cpf": 2}, expired_count=0, hit_rate_percent=150.0)
    ledger = LedgerStats(total_nonces=10, active_nonces=2, total_fingerprints=1, estimated_blocked=0)

    assert security_recommendations("BAIXO", cache, ledger) == [
        "Sistema operando com segurança ótima. Continue monitorando."
    ]


def test_recommendations_for_high_threat_and_poor_cache() -> None:
    cache = CacheStats(total_entries=0, count_by_type={}, expired_count=0, hit_rate_percent=0.0)
    ledger = LedgerStats(total_nonces=2, active_nonces=0, total_fingerprints=0, estimated_blocked=2)

    recommendations = security_recommendations("ALTO", cache, ledger)

    assert "Considere habilitar firewall WAF" in recommendations
    assert "Otimize a estratégia de cache para melhorar hit rate" in recommendations
    assert recommendations[-1].startswith("Muitas requisições bloqueadas por flood")


@pytest.mark.asyncio
async def test_build_aggregates_audit_ledger_cache_and_keys() -> None:
    clock = FakeClock()
    audit_store = FakeAuditLogStore()
    audit = AuditService(audit_store, clock)
    keys = FakeApiKeyStore()
    keys.add("a" * 32)
    keys.add("b" * 32, ativo=False)
    cache = ConsultaCacheService(FakeConsultaCacheStore(), clock)
    ledger = NonceLedger(MemoryLedgerStore(), clock)
    report = SecurityReportService(
        audit_store=audit_store,
        ledger=ledger,
        cache=cache,
        registry=KeyRegistry(keys, audit, clock),
        clock=clock,
    )

    await audit.record("x" * 20, audit_actions.SQL_INJECTION_DETECTED, "nome", "1.1.1.1", "ua", False,
                       {"valor": "Mar***--"})
    await audit.record("x" * 20, audit_actions.RATE_LIMIT_HOUR, "consultas", "1.1.1.1", "ua", False)
    await audit.record("x" * 20, audit_actions.RATE_LIMIT_DAY, "consultas", "1.1.1.1", "ua", False)
    await audit.record("x" * 20, audit_actions.CONSULTA, "cpf", "1.1.1.1", "ua", True)
    await cache.put("cpf", "12345678900", {"dados": {}}, True, 120)
    await cache.get("cpf", "12345678900")
    await ledger.check_replay("nonce-1", "1.1.1.1", "fp")

    body = await report.build()

    assert body["success"] is True
    assert body["systemInfo"]["environment"] == "DESENVOLVIMENTO"
    assert body["threatAssessment"]["threatScore"] == 25
    assert body["threatAssessment"]["threatLevel"] == "MÉDIO"
    assert body["threatAssessment"]["totalEvents"] == 1
    assert body["threatAssessment"]["eventsLast24h"] == 1

    stats = body["attackStatistics"]
    assert stats["sqlInjection"] == 1
    assert stats["rateLimitBreaches"] == 2
    assert stats["totalConsultas"] == 1
    assert stats["threatPercentage"] == "25.0"

    systems = body["protectionSystems"]
    assert systems["antiReplay"]["totalNonces"] == 1
    assert systems["rateLimiting"] == {"enabled": True, "activeKeys": 1, "totalKeys": 2, "status": "ATIVO"}
    assert systems["cacheSystem"]["hitRate"] == 100.0
    assert systems["cacheSystem"]["status"] == "OTIMIZADO"
    assert body["cacheMetrics"]["efficiency"] == "ALTA"

    recent = body["recentSecurityLogs"]
    assert [item["action"] for item in recent] == [
        audit_actions.RATE_LIMIT_DAY,
        audit_actions.RATE_LIMIT_HOUR,
        audit_actions.SQL_INJECTION_DETECTED,
    ]
    assert recent[-1]["details"] == {"valor": "Mar***--"}


@pytest.mark.asyncio
async def test_build_with_no_logs_reports_zero_threat() -> None:
    clock = FakeClock()
    audit_store = FakeAuditLogStore()
    audit = AuditService(audit_store, clock)
    report = SecurityReportService(
        audit_store=audit_store,
        ledger=NonceLedger(MemoryLedgerStore(), clock),
        cache=ConsultaCacheService(FakeConsultaCacheStore(), clock),
        registry=KeyRegistry(FakeApiKeyStore(), audit, clock),
        clock=clock,
    )

    body = await report.build()

    assert body["threatAssessment"]["threatScore"] == 0
    assert body["threatAssessment"]["threatLevel"] == "BAIXO"
    assert body["attackStatistics"]["threatPercentage"] == "0.0"
    assert body["recentSecurityLogs"] == []
