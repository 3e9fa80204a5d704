"""
Serviço de auditoria das decisões do pipeline e das operações administrativas.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Dict, Optional

from sentinela.config import get_settings
from sentinela.core.clock import Clock, SystemClock
from sentinela.core.logging import get_logger
from sentinela.core.security import mask_token
from sentinela.db.stores.audit_log_store import AuditLogStore
from sentinela.db.stores.records import AuditRecord
from sentinela.security.anti_sql import mask_sensitive, sanitize_for_logging

logger = get_logger(__name__)

# Ações registradas
CONSULTA = "consulta"
CACHE_HIT = "cache_hit"
RATE_LIMIT_HOUR = "rate_limit_hour"
RATE_LIMIT_DAY = "rate_limit_day"
INVALID_TIPO = "invalid_tipo"
INVALID_INPUT_VALIDATION = "invalid_input_validation"
UNAUTHORIZED_ACCESS = "unauthorized_access"
CREATE_API_KEY = "create_api_key"
TOGGLE_API_KEY = "toggle_api_key"
DELETE_API_KEY = "delete_api_key"
SQL_INJECTION_DETECTED = "sql_injection_detected"
REPLAY_ATTACK_DETECTED = "replay_attack_detected"
FLOOD_ATTACK_DETECTED = "flood_attack_detected"
SECURITY_MAINTENANCE = "security_maintenance"

SECURITY_ACTIONS = (
    UNAUTHORIZED_ACCESS,
    RATE_LIMIT_HOUR,
    RATE_LIMIT_DAY,
    INVALID_TIPO,
    INVALID_INPUT_VALIDATION,
    SQL_INJECTION_DETECTED,
    REPLAY_ATTACK_DETECTED,
    FLOOD_ATTACK_DETECTED,
)

SENSITIVE_DETAIL_FIELDS = ("cpf", "numero", "cpfNumber")

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"


def _severity_for(acao: str, sucesso: bool, details: Dict[str, Any]) -> str:
    integrity = details.get("integrity")
    if isinstance(integrity, dict) and integrity.get("riskLevel") == "CRITICAL":
        return SEVERITY_CRITICAL
    if acao in SECURITY_ACTIONS or not sucesso:
        return SEVERITY_WARNING
    return SEVERITY_INFO


class AuditService:
    """Persistência e consulta de logs de auditoria."""

    def __init__(self, store: AuditLogStore, clock: Optional[Clock] = None) -> None:
        self.settings = get_settings()
        self.store = store
        self.clock = clock or SystemClock()

    async def record(
        self,
        key_token: Optional[str],
        acao: str,
        tipo: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        sucesso: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Registra um evento de auditoria (falha interna é sempre tolerada)."""
        details = mask_sensitive(details or {}, SENSITIVE_DETAIL_FIELDS)
        key_ref = mask_token(key_token)
        try:
            await self.store.append(
                api_key_ref=key_ref,
                acao=acao,
                tipo=tipo,
                ip=sanitize_for_logging(ip, 100) or "unknown",
                user_agent=sanitize_for_logging(user_agent) or "unknown",
                sucesso=sucesso,
                severity=_severity_for(acao, sucesso, details),
                detalhes=json.dumps(details, ensure_ascii=False, default=str),
                now=self.clock.now(),
            )
        except Exception as exc:
            # Não quebra fluxo do endpoint por falha de auditoria
            logger.error(
                "audit.write_failed",
                acao=acao,
                key_ref=key_ref,
                error_type=type(exc).__name__,
            )

    async def list_logs(
        self,
        *,
        page: int = 1,
        page_size: int = 50,
        acao: Optional[str] = None,
        tipo: Optional[str] = None,
        sucesso: Optional[bool] = None,
    ) -> tuple[list[AuditRecord], int]:
        """Lista logs com filtros e paginação."""
        return await self.store.list_page(
            page=page,
            page_size=page_size,
            acao=acao,
            tipo=tipo,
            sucesso=sucesso,
        )

    async def purge_expired(self) -> int:
        """Remove registros vencidos por retenção configurada."""
        retention_days = int(self.settings.audit_log_retention_days or 0)
        if retention_days <= 0:
            return 0

        cutoff = self.clock.now() - timedelta(days=retention_days)
        return await self.store.purge_older_than(cutoff)
