"""
Abstração de relógio para operações dependentes de tempo.

Permite simular a passagem do tempo em testes (janelas de quota, TTL de
nonce, expiração de cache).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Interface de relógio."""

    @abstractmethod
    def now(self) -> datetime:
        """Retorna o instante atual em UTC."""

    def now_ms(self) -> float:
        """Instante atual em milissegundos desde a epoch."""
        return self.now().timestamp() * 1000


class SystemClock(Clock):
    """Relógio real do sistema."""

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FakeClock(Clock):
    """
    Relógio controlável para testes.

    O tempo só avança quando ``advance`` é chamado.
    """

    def __init__(self, initial: datetime | None = None):
        if initial is None:
            initial = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        self._current = initial

    def now(self) -> datetime:
        return self._current

    def set(self, dt: datetime) -> None:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        self._current = dt

    def advance(self, **kwargs: float) -> None:
        """Avança o relógio (aceita os mesmos argumentos de ``timedelta``)."""
        self._current += timedelta(**kwargs)
