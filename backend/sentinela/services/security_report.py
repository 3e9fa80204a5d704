"""
Relatório agregado de segurança para o painel administrativo.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Optional

from sentinela.config import get_settings
from sentinela.core.clock import Clock, SystemClock
from sentinela.db.stores.audit_log_store import AuditLogStore
from sentinela.db.stores.records import AuditRecord
from sentinela.security.anti_replay import LedgerStats, NonceLedger
from sentinela.services import audit_service as audit_actions
from sentinela.services.cache_service import CacheStats, ConsultaCacheService
from sentinela.services.key_registry import KeyRegistry

# Eventos que compõem o threat score
THREAT_ACTIONS = (
    audit_actions.SQL_INJECTION_DETECTED,
    audit_actions.REPLAY_ATTACK_DETECTED,
    audit_actions.FLOOD_ATTACK_DETECTED,
    audit_actions.UNAUTHORIZED_ACCESS,
)

RECENT_LOG_LIMIT = 20


def threat_level(score: int) -> str:
    if score > 70:
        return "CRÍTICO"
    if score > 50:
        return "ALTO"
    if score > 20:
        return "MÉDIO"
    return "BAIXO"


def threat_recommendation(score: int) -> str:
    if score > 70:
        return (
            "Nível CRÍTICO de ameaça detectado. Revise logs imediatamente e "
            "considere bloquear IPs suspeitos."
        )
    if score > 50:
        return "Nível ALTO de ameaça. Monitore logs ativamente e investigue acessos suspeitos."
    if score > 20:
        return "Nível MÉDIO de ameaça. Mantenha monitoramento e esteja preparado."
    return (
        "Nível BAIXO de ameaça. O sistema está operando dentro dos parâmetros "
        "normais de segurança."
    )


def cache_efficiency(hit_rate: float) -> str:
    if hit_rate > 70:
        return "ALTA"
    if hit_rate > 50:
        return "MÉDIA"
    return "BAIXA"


def security_recommendations(
    level: str,
    cache_stats: CacheStats,
    ledger_stats: LedgerStats,
) -> list[str]:
    recommendations: list[str] = []

    if level in ("CRÍTICO", "ALTO"):
        recommendations.extend([
            "Considere habilitar firewall WAF",
            "Revise logs de auditoria para IPs suspeitos",
            "Considere bloquear temporariamente IPs com muitas falhas",
            "Aumente a rigorosidade da validação",
        ])

    if cache_stats.hit_rate_percent < 50:
        recommendations.append("Otimize a estratégia de cache para melhorar hit rate")

    if ledger_stats.estimated_blocked > ledger_stats.total_nonces / 2:
        recommendations.append(
            "Muitas requisições bloqueadas por flood. Considere ajustar os limites"
        )

    if not recommendations:
        recommendations.append("Sistema operando com segurança ótima. Continue monitorando.")

    return recommendations


def _parse_details(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _log_item(record: AuditRecord) -> dict[str, Any]:
    return {
        "id": str(record.id),
        "timestamp": record.created_at.isoformat() if record.created_at else None,
        "action": record.acao,
        "type": record.tipo,
        "ip": record.ip,
        "success": record.sucesso,
        "severity": record.severity,
        "details": _parse_details(record.detalhes),
    }


class SecurityReportService:
    """Monta o status de segurança consolidado."""

    def __init__(
        self,
        audit_store: AuditLogStore,
        ledger: NonceLedger,
        cache: ConsultaCacheService,
        registry: KeyRegistry,
        clock: Optional[Clock] = None,
    ):
        self.audit_store = audit_store
        self.ledger = ledger
        self.cache = cache
        self.registry = registry
        self.clock = clock or SystemClock()

    async def build(self) -> dict[str, Any]:
        now = self.clock.now()
        settings = get_settings()

        ledger_stats = await self.ledger.stats()
        cache_stats = await self.cache.stats()
        total_keys = await self.registry.count()
        active_keys = await self.registry.count(active_only=True)

        total_logs = await self.audit_store.count()
        per_action = await self.audit_store.count_by_acao((
            *THREAT_ACTIONS,
            audit_actions.RATE_LIMIT_HOUR,
            audit_actions.RATE_LIMIT_DAY,
            audit_actions.CONSULTA,
        ))
        security_events = sum(per_action[acao] for acao in THREAT_ACTIONS)
        events_last_24h = await self.audit_store.count(
            acoes=THREAT_ACTIONS,
            since=now - timedelta(hours=24),
        )
        recent = await self.audit_store.list_recent(
            audit_actions.SECURITY_ACTIONS, RECENT_LOG_LIMIT
        )

        score = min(round(security_events / max(total_logs, 1) * 100), 100)
        level = threat_level(score)

        protection_systems = {
            "antiReplay": {
                "enabled": True,
                "activeNonces": ledger_stats.active_nonces,
                "totalNonces": ledger_stats.total_nonces,
                "totalFingerprints": ledger_stats.total_fingerprints,
                "blockedRequests": ledger_stats.estimated_blocked,
                "backend": settings.ledger_backend,
                "status": "ATIVO",
            },
            "cacheSystem": {
                "enabled": True,
                "hitRate": cache_stats.hit_rate_percent,
                "totalEntries": cache_stats.total_entries,
                "expiredCount": cache_stats.expired_count,
                "status": "OTIMIZADO" if cache_stats.hit_rate_percent > 50 else "BOM",
            },
            "rateLimiting": {
                "enabled": True,
                "activeKeys": active_keys,
                "totalKeys": total_keys,
                "status": "ATIVO",
            },
            "sqlInjection": {
                "enabled": True,
                "detectedAttempts": per_action[audit_actions.SQL_INJECTION_DETECTED],
                "blockedRequests": per_action[audit_actions.SQL_INJECTION_DETECTED],
                "status": "ATIVO",
            },
        }

        return {
            "success": True,
            "systemInfo": {
                "environment": "PRODUÇÃO" if settings.is_production else "DESENVOLVIMENTO",
                "timestamp": now.isoformat(),
                "adminKeyStatus": "ATIVO",
            },
            "threatAssessment": {
                "threatScore": score,
                "threatLevel": level,
                "totalEvents": security_events,
                "eventsLast24h": events_last_24h,
                "recommendation": threat_recommendation(score),
            },
            "attackStatistics": {
                "sqlInjection": per_action[audit_actions.SQL_INJECTION_DETECTED],
                "replayAttacks": per_action[audit_actions.REPLAY_ATTACK_DETECTED],
                "floodAttacks": per_action[audit_actions.FLOOD_ATTACK_DETECTED],
                "rateLimitBreaches": (
                    per_action[audit_actions.RATE_LIMIT_HOUR]
                    + per_action[audit_actions.RATE_LIMIT_DAY]
                ),
                "unauthorizedAttempts": per_action[audit_actions.UNAUTHORIZED_ACCESS],
                "totalSecurityEvents": security_events,
                "totalConsultas": per_action[audit_actions.CONSULTA],
                "threatPercentage": (
                    f"{security_events / total_logs * 100:.1f}" if total_logs > 0 else "0.0"
                ),
            },
            "protectionSystems": protection_systems,
            "cacheMetrics": {
                **cache_stats.to_dict(),
                "efficiency": cache_efficiency(cache_stats.hit_rate_percent),
            },
            "recentSecurityLogs": [_log_item(record) for record in recent],
            "recommendations": security_recommendations(level, cache_stats, ledger_stats),
        }
