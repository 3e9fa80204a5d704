"""
Erros estruturados expostos pela API.

Todo erro visível ao cliente é renderizado como
``{"success": false, "error": <mensagem>, "code": <código>, ...}``;
nenhuma exceção interna vaza detalhes de implementação.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from sentinela.core.logging import get_logger

logger = get_logger(__name__)


MISSING_API_KEY = "MISSING_API_KEY"
INVALID_API_KEY = "INVALID_API_KEY"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
FLOOD_DETECTED = "FLOOD_DETECTED"
REPLAY_DETECTED = "REPLAY_DETECTED"
INVALID_TYPE = "INVALID_TYPE"
VALIDATION_ERROR = "VALIDATION_ERROR"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"


class ConsultaError(Exception):
    """Falha terminal de uma requisição (fatal para a request, nunca para o processo)."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        payload.update(self.extra)
        return payload


async def _consulta_error_handler(request: Request, exc: ConsultaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Erro interno",
            "code": INTERNAL_ERROR,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Registra os handlers de erro estruturado na aplicação."""
    app.add_exception_handler(ConsultaError, _consulta_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
