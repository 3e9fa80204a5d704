"""
Proteção anti-replay e anti-flood.

Detecção heurística por janela de tempo: um nonce reutilizado pelo mesmo
cliente dentro do TTL é tratado como replay; replays lentos passam. Rajadas
de requisições estruturalmente idênticas vindas do mesmo IP são tratadas
como flood.

Nenhum método agenda a si próprio: ``sweep_expired`` é chamado pelo loop de
manutenção da aplicação.
"""

from __future__ import annotations

import asyncio
import hashlib
import zlib
from dataclasses import dataclass
from typing import Optional

from sentinela.config import get_settings
from sentinela.core.clock import Clock, SystemClock
from sentinela.core.logging import get_logger
from sentinela.core.security import generate_token
from sentinela.security.ledger_store import (
    FINGERPRINTS,
    FLOOD,
    NONCES,
    LedgerStore,
    MemoryLedgerStore,
)

logger = get_logger(__name__)

NONCE_LENGTH = 32
TOO_FAST_MS = 1000
RAPID_IP_CHANGE_MS = 60000
_LOCK_STRIPES = 64

# Motivos devolvidos por check_replay
REASON_NEW = "new"
REASON_EXPIRED = "expired-reusable"
REASON_DIFFERENT_IP = "different-ip"
REASON_CONSUMED = "consumed"
REASON_TOO_FAST = "too-fast"
REASON_SUSPICIOUS = "suspicious-fast-reuse"
REASON_PASSED = "passed"


@dataclass(frozen=True)
class ReplayCheck:
    is_replay: bool
    reason: str


@dataclass(frozen=True)
class FloodCheck:
    is_flooding: bool
    count: int


@dataclass(frozen=True)
class FingerprintCheck:
    is_new_client: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class LedgerStats:
    total_nonces: int
    active_nonces: int
    total_fingerprints: int
    estimated_blocked: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalNonces": self.total_nonces,
            "activeNonces": self.active_nonces,
            "totalFingerprints": self.total_fingerprints,
            "estimatedBlocked": self.estimated_blocked,
        }


class NonceLedger:
    """Registro temporário de nonces, fingerprints e contadores de flood."""

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        clock: Optional[Clock] = None,
        *,
        nonce_ttl_ms: Optional[int] = None,
        fingerprint_ttl_ms: Optional[int] = None,
        flood_threshold: Optional[int] = None,
        flood_interval_ms: Optional[int] = None,
        flood_reset_ms: Optional[int] = None,
        flood_idle_ms: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store or MemoryLedgerStore()
        self.clock = clock or SystemClock()
        self.nonce_ttl_ms = nonce_ttl_ms or settings.security_nonce_ttl_ms
        self.fingerprint_ttl_ms = fingerprint_ttl_ms or settings.security_fingerprint_ttl_ms
        self.flood_threshold = flood_threshold or settings.security_flood_threshold
        self.flood_interval_ms = flood_interval_ms or settings.security_flood_interval_ms
        self.flood_reset_ms = flood_reset_ms or settings.security_flood_reset_ms
        self.flood_idle_ms = flood_idle_ms or settings.security_flood_idle_ms
        self._locks = [asyncio.Lock() for _ in range(_LOCK_STRIPES)]

    def _lock_for(self, namespace: str, key: str) -> asyncio.Lock:
        index = zlib.crc32(f"{namespace}:{key}".encode("utf-8")) % _LOCK_STRIPES
        return self._locks[index]

    @staticmethod
    def issue(length: int = NONCE_LENGTH) -> str:
        """Gera nonce aleatório (nada é registrado até o primeiro uso)."""
        return generate_token(length)

    @staticmethod
    def fingerprint(
        ip: Optional[str],
        user_agent: Optional[str],
        accept: Optional[str] = None,
        accept_encoding: Optional[str] = None,
        accept_language: Optional[str] = None,
    ) -> str:
        """Hash determinístico de IP + user agent + headers accept."""
        data = "|".join(
            value or "unknown"
            for value in (ip, user_agent, accept, accept_encoding, accept_language)
        )
        return hashlib.blake2b(data.encode("utf-8"), digest_size=8).hexdigest()

    @staticmethod
    def device_fingerprint(
        user_agent: Optional[str],
        accept: Optional[str] = None,
        accept_encoding: Optional[str] = None,
        accept_language: Optional[str] = None,
    ) -> str:
        """Fingerprint sem o IP, usado para notar o mesmo cliente trocando de IP."""
        return NonceLedger.fingerprint(None, user_agent, accept, accept_encoding, accept_language)

    @staticmethod
    def request_signature(*parts: Optional[str]) -> str:
        """Assinatura do formato da requisição (método, rota, parâmetros...)."""
        data = ":".join(part or "" for part in parts)
        return hashlib.blake2b(data.encode("utf-8"), digest_size=8).hexdigest()

    def _record(self, ip: Optional[str], fingerprint: Optional[str], now: float) -> dict:
        return {
            "timestamp": now,
            "ip": ip,
            "fingerprint": fingerprint,
            "consumed": False,
        }

    async def check_replay(
        self,
        nonce: str,
        client_ip: Optional[str],
        client_fingerprint: Optional[str],
    ) -> ReplayCheck:
        """
        Verifica reutilização de nonce.

        O nonce é registrado no primeiro uso; reapresentações pelo mesmo
        cliente dentro do TTL são replay.
        """
        async with self._lock_for(NONCES, nonce):
            now = self.clock.now_ms()
            entry = await self.store.get(NONCES, nonce)
            fresh = self._record(client_ip, client_fingerprint, now)
            ttl = self.nonce_ttl_ms * 2

            if entry is None:
                await self.store.set(NONCES, nonce, fresh, ttl_ms=ttl)
                return ReplayCheck(False, REASON_NEW)

            age = now - float(entry["timestamp"])
            if age > self.nonce_ttl_ms:
                await self.store.set(NONCES, nonce, fresh, ttl_ms=ttl)
                return ReplayCheck(False, REASON_EXPIRED)

            # Nonce gasto vale para qualquer origem até expirar
            if entry.get("consumed"):
                return ReplayCheck(True, REASON_CONSUMED)

            recorded_ip = entry.get("ip")
            if recorded_ip is not None and client_ip is not None and recorded_ip != client_ip:
                await self.store.set(NONCES, nonce, fresh, ttl_ms=ttl)
                return ReplayCheck(False, REASON_DIFFERENT_IP)

            if entry.get("fingerprint") == client_fingerprint:
                if age < TOO_FAST_MS:
                    return ReplayCheck(True, REASON_TOO_FAST)
                if age < self.nonce_ttl_ms:
                    return ReplayCheck(True, REASON_SUSPICIOUS)

            return ReplayCheck(False, REASON_PASSED)

    async def consume(self, nonce: str) -> None:
        """Marca o nonce como gasto; não é honrado de novo até expirar."""
        async with self._lock_for(NONCES, nonce):
            entry = await self.store.get(NONCES, nonce)
            if entry is None:
                entry = self._record(None, None, self.clock.now_ms())
            entry["consumed"] = True
            await self.store.set(NONCES, nonce, entry, ttl_ms=self.nonce_ttl_ms * 2)

    async def check_flood(self, signature: str, client_ip: str) -> FloodCheck:
        """
        Conta requisições idênticas por (IP, assinatura).

        Flood quando a chamada anterior foi há menos de ``flood_interval_ms``
        e o total acumulado passa de ``flood_threshold``. O contador reinicia
        após ``flood_reset_ms`` sem chamadas.
        """
        key = f"{client_ip}:{signature}"
        async with self._lock_for(FLOOD, key):
            now = self.clock.now_ms()
            entry = await self.store.get(FLOOD, key)

            if entry is None:
                elapsed = None
                count = 1
            else:
                elapsed = now - float(entry["last_seen"])
                count = 1 if elapsed > self.flood_reset_ms else int(entry["count"]) + 1

            await self.store.set(
                FLOOD,
                key,
                {"last_seen": now, "count": count},
                ttl_ms=self.flood_idle_ms,
            )

        flooding = (
            elapsed is not None
            and elapsed < self.flood_interval_ms
            and count > self.flood_threshold
        )
        if flooding:
            logger.warning("ledger.flood_detected", client_ip=client_ip, count=count)
        return FloodCheck(flooding, count)

    async def track_fingerprint(self, fingerprint: str, client_ip: str) -> FingerprintCheck:
        """Registra o fingerprint; mudança rápida de IP é apenas sinalizada."""
        async with self._lock_for(FINGERPRINTS, fingerprint):
            now = self.clock.now_ms()
            entry = await self.store.get(FINGERPRINTS, fingerprint)
            fresh = {"timestamp": now, "ip": client_ip}
            ttl = self.fingerprint_ttl_ms * 2

            if entry is None:
                await self.store.set(FINGERPRINTS, fingerprint, fresh, ttl_ms=ttl)
                return FingerprintCheck(True)

            age = now - float(entry["timestamp"])
            if age < RAPID_IP_CHANGE_MS and entry.get("ip") != client_ip:
                logger.warning(
                    "ledger.rapid_ip_change",
                    fingerprint=fingerprint,
                    previous_ip=entry.get("ip"),
                    client_ip=client_ip,
                )
                return FingerprintCheck(False, "rapid-ip-change")

            if age > self.fingerprint_ttl_ms:
                await self.store.set(FINGERPRINTS, fingerprint, fresh, ttl_ms=ttl)
                return FingerprintCheck(True, "stale-regenerated")

            return FingerprintCheck(False)

    async def sweep_expired(self) -> int:
        """
        Remove nonces vencidos, fingerprints antigos e contadores ociosos.

        Returns:
            Quantidade de nonces removidos
        """
        now = self.clock.now_ms()
        cleared = 0

        for nonce, entry in await self.store.items(NONCES):
            if now - float(entry["timestamp"]) > self.nonce_ttl_ms:
                await self.store.delete(NONCES, nonce)
                cleared += 1

        for fingerprint, entry in await self.store.items(FINGERPRINTS):
            if now - float(entry["timestamp"]) > self.fingerprint_ttl_ms:
                await self.store.delete(FINGERPRINTS, fingerprint)

        for key, entry in await self.store.items(FLOOD):
            if now - float(entry["last_seen"]) > self.flood_idle_ms:
                await self.store.delete(FLOOD, key)

        return cleared

    async def stats(self) -> LedgerStats:
        now = self.clock.now_ms()
        nonces = await self.store.items(NONCES)
        active = sum(
            1 for _, entry in nonces
            if now - float(entry["timestamp"]) <= self.nonce_ttl_ms
        )
        blocked = sum(
            1 for _, entry in await self.store.items(FLOOD)
            if now - float(entry["last_seen"]) < self.flood_idle_ms
            and int(entry["count"]) > self.flood_threshold
        )
        return LedgerStats(
            total_nonces=len(nonces),
            active_nonces=active,
            total_fingerprints=await self.store.size(FINGERPRINTS),
            estimated_blocked=blocked,
        )

    async def clear_all(self) -> None:
        """Descarta todo o estado (resposta a incidente)."""
        await self.store.clear()
        logger.warning("ledger.cleared")
