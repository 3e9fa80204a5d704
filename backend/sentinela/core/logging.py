"""Configuração de logging estruturado padrão da aplicação."""

from __future__ import annotations

from contextvars import ContextVar
import logging
from collections.abc import Iterator
from typing import Any

from contextlib import contextmanager

import structlog

from sentinela.config import get_settings


_REQUEST_ID_VAR: ContextVar[str | None] = ContextVar("request_id", default=None)
_KEY_REF_VAR: ContextVar[str | None] = ContextVar("key_ref", default=None)
_TASK_ID_VAR: ContextVar[str | None] = ContextVar("task_id", default=None)


def _to_str(value: Any) -> str | None:
    """Converte valor de contexto para string quando aplicável."""
    if value is None:
        return None
    return str(value)


def _is_production(settings) -> bool:
    environment = settings.environment.lower()
    return not settings.debug and environment not in {"development", "dev", "local"}


@contextmanager
def bind_request_context(
    *,
    request_id: str | None = None,
    key_ref: str | None = None,
    task_id: str | None = None,
) -> Iterator[None]:
    """Adiciona contexto de request/execução aos logs via contextvars.

    ``key_ref`` deve ser sempre a referência mascarada da credencial.
    """
    tokens = []
    if request_id is not None:
        tokens.append((_REQUEST_ID_VAR, _REQUEST_ID_VAR.set(_to_str(request_id))))
    if key_ref is not None:
        tokens.append((_KEY_REF_VAR, _KEY_REF_VAR.set(_to_str(key_ref))))
    if task_id is not None:
        tokens.append((_TASK_ID_VAR, _TASK_ID_VAR.set(_to_str(task_id))))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def inject_request_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Injeta contexto atual (request/chave/task) no evento de log."""
    del logger, method_name

    request_id = _REQUEST_ID_VAR.get()
    key_ref = _KEY_REF_VAR.get()
    task_id = _TASK_ID_VAR.get()

    if request_id is not None:
        event_dict["request_id"] = request_id
    if key_ref is not None:
        event_dict["key_ref"] = key_ref
    if task_id is not None:
        event_dict["task_id"] = task_id

    return event_dict


def configure_structlog() -> None:
    """Configura structlog com saída estruturada para observabilidade."""
    settings = get_settings()
    is_production = _is_production(settings)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if is_production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            inject_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Retorna logger estruturado para o módulo informado."""
    return structlog.get_logger(name)
