"""
Registro de chaves de acesso: autenticação e controle de quota.

A credencial de administrador é resolvida uma única vez em ``validate`` e
devolvida como ``AdminCredential``; as demais chaves viram
``RegisteredKey``. O restante do sistema decide pelo tipo, nunca por
comparação de strings.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Optional, Union

from sentinela.core.clock import Clock, SystemClock
from sentinela.core.logging import get_logger
from sentinela.core.security import (
    ADMIN_KEY_SENTINEL,
    generate_token,
    is_admin_key,
    mask_token,
)
from sentinela.db.stores.api_key_store import ApiKeyStore
from sentinela.db.stores.records import ApiKeyRecord
from sentinela.security.anti_sql import sanitize_for_logging
from sentinela.services import audit_service as audit_actions
from sentinela.services.audit_service import AuditService

logger = get_logger(__name__)

TOKEN_LENGTH = 32
TIPOS_CHAVE = ("standard", "premium", "admin")
NOME_RANGE = (3, 50)
HOURLY_RANGE = (10, 1000)
DAILY_RANGE = (100, 10000)


class KeyRegistryError(Exception):
    """Falha de domínio do registro de chaves."""

    message = "Erro no registro de chaves"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class KeyNotFound(KeyRegistryError):
    message = "API-KEY inválida"


class KeyDeactivated(KeyRegistryError):
    message = "API-KEY desativada"


class KeyExpired(KeyRegistryError):
    message = "API-KEY expirada"


class PermissionDenied(KeyRegistryError):
    message = "Não é possível deletar a chave de administrador"


class KeyValidationError(KeyRegistryError):
    message = "Dados inválidos para a API-KEY"


@dataclass(frozen=True)
class AdminCredential:
    """Credencial de administrador (fora do registro, sem quota)."""

    nome: str = "Administrator"
    tipo: str = "admin"
    is_admin: bool = True

    @property
    def key_ref(self) -> str:
        return ADMIN_KEY_SENTINEL


@dataclass(frozen=True)
class RegisteredKey:
    """Chave persistida no registro."""

    record: ApiKeyRecord
    is_admin: bool = False

    @property
    def nome(self) -> str:
        return self.record.nome

    @property
    def tipo(self) -> str:
        return self.record.tipo

    @property
    def key_ref(self) -> str:
        return mask_token(self.record.key)


Credential = Union[AdminCredential, RegisteredKey]


@dataclass(frozen=True)
class QuotaDecision:
    """Resultado de ``check_and_increment``; ``None`` significa ilimitado."""

    allowed: bool
    remaining_hour: Optional[int] = None
    remaining_day: Optional[int] = None
    error: Optional[str] = None


class KeyRegistry:
    """Autenticação de chaves e contabilidade de quota."""

    def __init__(
        self,
        store: ApiKeyStore,
        audit: AuditService,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()

    async def validate(self, token: Optional[str]) -> Credential:
        """
        Resolve o token apresentado em uma credencial.

        Raises:
            KeyNotFound: token desconhecido
            KeyDeactivated: chave inativa
            KeyExpired: chave com ``expires_at`` no passado
        """
        if is_admin_key(token):
            logger.info("auth.admin_validated")
            return AdminCredential()

        if not token:
            raise KeyNotFound()

        record = await self.store.get_by_key(token)
        key_ref = mask_token(token)
        if record is None:
            logger.info("auth.key_not_found", key_ref=key_ref)
            raise KeyNotFound()
        if not record.ativo:
            logger.info("auth.key_deactivated", key_ref=key_ref)
            raise KeyDeactivated()

        now = self.clock.now()
        if record.expires_at is not None and record.expires_at < now:
            logger.info("auth.key_expired", key_ref=key_ref)
            raise KeyExpired()

        await self.store.reset_windows(record.id, now)
        refreshed = await self.store.get_by_id(record.id)
        return RegisteredKey(refreshed or record)

    async def check_and_increment(
        self,
        token: Optional[str],
        client_ip: Optional[str],
        user_agent: Optional[str],
    ) -> QuotaDecision:
        """
        Consome uma unidade de quota por hora e por dia.

        O incremento é condicionado no próprio UPDATE; uma requisição
        rejeitada não altera nenhum contador.
        """
        credential = await self.validate(token)
        if isinstance(credential, AdminCredential):
            return QuotaDecision(allowed=True)

        record = credential.record
        consumed = await self.store.try_consume(record.id, self.clock.now())
        if consumed is not None:
            return QuotaDecision(
                allowed=True,
                remaining_hour=consumed.rate_limit - consumed.used_this_hour,
                remaining_day=consumed.daily_limit - consumed.used_today,
            )

        # UPDATE rejeitado também quando a chave some ou é desativada no meio
        current = await self.store.get_by_id(record.id)
        if current is None:
            logger.info("auth.key_not_found", key_ref=credential.key_ref)
            raise KeyNotFound()
        if not current.ativo:
            logger.info("auth.key_deactivated", key_ref=credential.key_ref)
            raise KeyDeactivated()

        sanitized_ip = sanitize_for_logging(client_ip)
        remaining_hour = current.rate_limit - current.used_this_hour - 1
        remaining_day = current.daily_limit - current.used_today - 1

        if remaining_hour < 0:
            logger.info("auth.rate_limit_hour", key_ref=credential.key_ref, client_ip=sanitized_ip)
            await self.audit.record(
                token,
                audit_actions.RATE_LIMIT_HOUR,
                "consultas",
                client_ip,
                user_agent,
                False,
                {"rateLimit": current.rate_limit, "used": current.used_this_hour + 1},
            )
            return QuotaDecision(
                allowed=False,
                remaining_hour=0,
                remaining_day=max(remaining_day, 0),
                error="Limite de requisições por hora excedido",
            )

        logger.info("auth.rate_limit_day", key_ref=credential.key_ref, client_ip=sanitized_ip)
        await self.audit.record(
            token,
            audit_actions.RATE_LIMIT_DAY,
            "consultas",
            client_ip,
            user_agent,
            False,
            {"rateLimit": current.daily_limit, "used": current.used_today + 1},
        )
        return QuotaDecision(
            allowed=False,
            remaining_hour=max(remaining_hour, 0),
            remaining_day=0,
            error="Limite de requisições por dia excedido",
        )

    async def create(
        self,
        nome: str,
        tipo: str,
        rate_limit: int,
        daily_limit: int,
        created_by: Optional[str],
    ) -> tuple[ApiKeyRecord, str]:
        """
        Emite uma nova chave.

        Returns:
            Registro criado e o token em claro (exibido uma única vez)
        """
        nome = (nome or "").strip()
        if not NOME_RANGE[0] <= len(nome) <= NOME_RANGE[1]:
            raise KeyValidationError("Nome deve ter entre 3 e 50 caracteres")
        if tipo not in TIPOS_CHAVE:
            raise KeyValidationError(
                f"Tipo inválido. Tipos disponíveis: {', '.join(TIPOS_CHAVE)}"
            )
        if not HOURLY_RANGE[0] <= rate_limit <= HOURLY_RANGE[1]:
            raise KeyValidationError("Rate limit por hora deve estar entre 10 e 1000")
        if not DAILY_RANGE[0] <= daily_limit <= DAILY_RANGE[1]:
            raise KeyValidationError("Rate limit por dia deve estar entre 100 e 10000")

        token = generate_token(TOKEN_LENGTH)
        record = await self.store.insert(
            key=token,
            nome=nome,
            tipo=tipo,
            rate_limit=rate_limit,
            daily_limit=daily_limit,
            created_by=created_by,
            now=self.clock.now(),
        )
        logger.info("auth.key_created", nome=nome, tipo=tipo)
        await self.audit.record(
            created_by,
            audit_actions.CREATE_API_KEY,
            tipo,
            details={
                "nome": nome,
                "tipo": tipo,
                "rateLimit": rate_limit,
                "dailyLimit": daily_limit,
                "key": "***" + token[-4:],
            },
        )
        return record, token

    async def toggle(self, key_id: uuid.UUID, actor: Optional[str] = None) -> ApiKeyRecord:
        record = await self.store.get_by_id(key_id)
        if record is None:
            raise KeyNotFound("API-KEY não encontrada")

        updated = await self.store.set_active(key_id, not record.ativo, self.clock.now())
        if updated is None:
            raise KeyNotFound("API-KEY não encontrada")

        logger.info("auth.key_toggled", nome=record.nome, ativo=updated.ativo)
        await self.audit.record(
            actor,
            audit_actions.TOGGLE_API_KEY,
            "admin",
            details={
                "keyId": str(key_id),
                "novoStatus": "ativo" if updated.ativo else "inativo",
                "nome": record.nome,
            },
        )
        return updated

    async def delete(self, key_id: uuid.UUID, actor: Optional[str] = None) -> None:
        record = await self.store.get_by_id(key_id)
        if record is None:
            raise KeyNotFound("API-KEY não encontrada")
        if is_admin_key(record.key):
            logger.error("auth.admin_key_delete_attempt")
            raise PermissionDenied()

        await self.store.delete(key_id)
        logger.info("auth.key_deleted", nome=record.nome)
        await self.audit.record(
            actor,
            audit_actions.DELETE_API_KEY,
            "admin",
            details={"keyId": str(key_id), "nome": record.nome},
        )

    async def list(self) -> list[ApiKeyRecord]:
        """Todas as chaves com o token mascarado."""
        return [
            replace(record, key=mask_token(record.key))
            for record in await self.store.list_all()
        ]

    async def count(self, *, active_only: bool = False) -> int:
        return await self.store.count(active_only=active_only)
