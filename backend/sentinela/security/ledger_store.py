"""
Armazenamento do ledger anti-replay / anti-flood.

Duas implementações com a mesma interface:
  - ``MemoryLedgerStore``: dicionários do processo (padrão)
  - ``RedisLedgerStore``: ``redis.asyncio`` com valores JSON, para rodar
    múltiplas réplicas atrás de um balanceador

O estado é volátil por definição; um restart apenas reinicia as janelas.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as aioredis

from sentinela.config import get_settings

NONCES = "nonce"
FINGERPRINTS = "fingerprint"
FLOOD = "flood"

NAMESPACES = (NONCES, FINGERPRINTS, FLOOD)


class LedgerStore(ABC):
    """Mapa chave/valor particionado por namespace."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    async def set(
        self,
        namespace: str,
        key: str,
        value: dict[str, Any],
        ttl_ms: Optional[int] = None,
    ) -> None:
        ...

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool:
        ...

    @abstractmethod
    async def items(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        ...

    @abstractmethod
    async def clear(self, namespace: Optional[str] = None) -> None:
        ...

    async def size(self, namespace: str) -> int:
        return len(await self.items(namespace))


class MemoryLedgerStore(LedgerStore):
    """Implementação em memória; a expiração fica a cargo da varredura."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {ns: {} for ns in NAMESPACES}

    def _bucket(self, namespace: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault(namespace, {})

    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        value = self._bucket(namespace).get(key)
        return dict(value) if value is not None else None

    async def set(self, namespace, key, value, ttl_ms=None) -> None:
        self._bucket(namespace)[key] = dict(value)

    async def delete(self, namespace: str, key: str) -> bool:
        return self._bucket(namespace).pop(key, None) is not None

    async def items(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        return [(key, dict(value)) for key, value in self._bucket(namespace).items()]

    async def clear(self, namespace: Optional[str] = None) -> None:
        if namespace is None:
            for bucket in self._data.values():
                bucket.clear()
        else:
            self._bucket(namespace).clear()

    async def size(self, namespace: str) -> int:
        return len(self._bucket(namespace))


class RedisLedgerStore(LedgerStore):
    """Implementação em Redis com chaves ``ledger:<namespace>:<chave>``."""

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "ledger"):
        self._redis_url = redis_url or get_settings().redis_url
        self._prefix = prefix
        self._redis: Optional[aioredis.Redis] = None

    async def _get_redis_client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    def _key(self, namespace: str, key: str) -> str:
        return f"{self._prefix}:{namespace}:{key}"

    def _pattern(self, namespace: str) -> str:
        return f"{self._prefix}:{namespace}:*"

    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        client = await self._get_redis_client()
        raw = await client.get(self._key(namespace, key))
        if not raw:
            return None
        return json.loads(raw)

    async def set(self, namespace, key, value, ttl_ms=None) -> None:
        client = await self._get_redis_client()
        await client.set(
            self._key(namespace, key),
            json.dumps(value, ensure_ascii=False),
            px=ttl_ms,
        )

    async def delete(self, namespace: str, key: str) -> bool:
        client = await self._get_redis_client()
        return bool(await client.delete(self._key(namespace, key)))

    async def items(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        client = await self._get_redis_client()
        prefix_len = len(self._key(namespace, ""))
        keys = [key async for key in client.scan_iter(match=self._pattern(namespace))]
        if not keys:
            return []
        values = await client.mget(keys)
        return [
            (key[prefix_len:], json.loads(raw))
            for key, raw in zip(keys, values)
            if raw
        ]

    async def clear(self, namespace: Optional[str] = None) -> None:
        client = await self._get_redis_client()
        namespaces = NAMESPACES if namespace is None else (namespace,)
        for ns in namespaces:
            keys = [key async for key in client.scan_iter(match=self._pattern(ns))]
            if keys:
                await client.delete(*keys)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def build_ledger_store() -> LedgerStore:
    """Instancia o backend configurado em ``ledger_backend``."""
    if get_settings().ledger_backend == "redis":
        return RedisLedgerStore()
    return MemoryLedgerStore()
