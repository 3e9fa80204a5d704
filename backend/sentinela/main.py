"""
Aplicação Principal FastAPI - Sentinela

Proxy de consultas (CPF, nome, número) com admissão por API-KEY, quotas,
heurísticas anti-abuso, cache e auditoria.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from time import perf_counter
from typing import Any
from uuid import uuid4

import redis.asyncio as aioredis
from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from sentinela.api.deps import get_ledger_store, get_nonce_ledger
from sentinela.api.v1 import admin_keys, admin_security, auth, consultas
from sentinela.config import get_settings
from sentinela.core.errors import register_exception_handlers
from sentinela.core.logging import bind_request_context, configure_structlog, get_logger
from sentinela.core.metrics import (
    CONTENT_TYPE_LATEST,
    get_metrics_payload,
    is_enabled,
    record_http_request,
)
from sentinela.db.base import engine
from sentinela.security.anti_replay import NonceLedger
from sentinela.security.ledger_store import RedisLedgerStore

settings = get_settings()
configure_structlog()
logger = get_logger(__name__)


async def ledger_sweep_loop(ledger: NonceLedger, interval_seconds: float) -> None:
    """Varre nonces, fingerprints e contadores de flood periodicamente."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await ledger.sweep_expired()
            logger.info("ledger.sweep_completed", removed_nonces=removed)
        except Exception:
            logger.exception("ledger.sweep_failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.

    Startup: agenda a varredura do ledger anti-replay.
    Shutdown: cancela a varredura e fecha o backend do ledger.
    """
    logger.info(
        "app_startup_started",
        app_name=settings.app_name,
        app_version=settings.app_version,
        environment=settings.environment,
        ledger_backend=settings.ledger_backend,
    )
    sweeper = asyncio.create_task(
        ledger_sweep_loop(get_nonce_ledger(), settings.ledger_sweep_interval_seconds)
    )

    yield

    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper

    store = get_ledger_store()
    if isinstance(store, RedisLedgerStore):
        await store.close()
    logger.info("app_shutdown")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Middleware de observabilidade básica com duração de request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = perf_counter()

        with bind_request_context(request_id=request_id):
            response = await call_next(request)

        elapsed_ms = (perf_counter() - start) * 1000
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.2f}"

        logger.info(
            "http_request_complete",
            method=request.method,
            path=request.url.path,
            status_code=getattr(response, "status_code", None),
            request_id=request_id,
            duration_ms=round(elapsed_ms, 2),
        )
        return response


class DocsProtectionMiddleware(BaseHTTPMiddleware):
    """Protege /docs e /redoc com token opcional de acesso."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path in ("/docs", "/redoc", "/openapi.json"):
            token = (
                request.headers.get("x-docs-token")
                or request.query_params.get("token")
            )
            if settings.docs_access_token and token != settings.docs_access_token:
                return JSONResponse(
                    status_code=401,
                    content={"detail": "Unauthorized documentation access"},
                )

        return await call_next(request)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Mede duração/contagem de requisições para o endpoint /metrics."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start
        if is_enabled():
            record_http_request(
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_seconds=elapsed,
            )
        return response


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Proxy de consultas com controle de acesso, anti-abuso e auditoria",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Consultas", "description": "Consultas de CPF, nome e número."},
        {"name": "Authentication", "description": "Validação de API-KEY."},
        {"name": "Admin - API Keys", "description": "Gestão de chaves de acesso."},
        {"name": "Admin - Segurança", "description": "Status, manutenção e auditoria."},
    ],
    lifespan=lifespan,
)


# =====================================================
# Middlewares
# =====================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(DocsProtectionMiddleware)
app.add_middleware(MetricsMiddleware)

register_exception_handlers(app)


def _build_health_result() -> dict[str, Any]:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


async def _check_postgres() -> dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "connected"}
    except (Exception, SQLAlchemyError) as exc:
        return {"status": "disconnected", "error": str(exc)}


async def _check_redis() -> dict[str, Any]:
    redis_client = aioredis.from_url(settings.redis_url)
    try:
        ping_result = await redis_client.ping()
        if ping_result is True:
            return {"status": "connected"}
        return {"status": "disconnected", "error": f"ping={ping_result!r}"}
    except Exception as exc:
        return {"status": "disconnected", "error": str(exc)}
    finally:
        await redis_client.aclose()


async def _collect_dependency_checks() -> dict[str, Any]:
    postgres = await _check_postgres()
    redis_check = await _check_redis()

    return {
        "dependencies": {
            "postgres": postgres,
            "redis": redis_check,
        },
    }


# =====================================================
# Rotas API v1
# =====================================================

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(consultas.router)
api_router.include_router(auth.router)
api_router.include_router(admin_keys.router)
api_router.include_router(admin_security.router)

app.include_router(api_router)


# =====================================================
# Health Check
# =====================================================

@app.get("/")
async def root():
    """Health check básico."""
    payload = _build_health_result()
    payload["status"] = "healthy"
    return payload


@app.get("/health")
async def health():
    """Health check simples: sempre retorna resumo consolidado."""
    payload = _build_health_result()
    payload["status"] = "healthy"
    checks = await _collect_dependency_checks()
    payload.update(checks)
    return payload


@app.get("/health/ready")
async def ready():
    """Readiness para orquestradores (carregamento de tráfego)."""
    payload = _build_health_result()
    checks = await _collect_dependency_checks()
    payload.update(checks)

    all_connected = all(
        dependency.get("status") == "connected"
        for dependency in checks["dependencies"].values()
    )

    if all_connected:
        payload["status"] = "ready"
        return payload

    payload["status"] = "unready"
    payload["status_code"] = 503
    raise HTTPException(status_code=503, detail=payload)


@app.get("/health/live")
async def live():
    """Liveness: verifica se o processo está vivo."""
    payload = _build_health_result()
    payload["status"] = "alive"
    return payload


# =====================================================
# Métricas Prometheus
# =====================================================


@app.get("/metrics", include_in_schema=False)
async def metrics() -> PlainTextResponse:
    if not is_enabled():
        return PlainTextResponse("metrics_disabled 0\n")

    payload = get_metrics_payload()
    return PlainTextResponse(payload.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sentinela.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
