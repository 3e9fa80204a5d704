"""Métricas leves de execução (Prometheus)."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from sentinela.config import get_settings

__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_metrics_payload",
    "is_enabled",
    "record_cache_hit",
    "record_cache_miss",
    "record_celery_task",
    "record_consulta",
    "record_http_request",
    "record_upstream_latency",
]

_registry = CollectorRegistry()
_http_requests_total = None
_http_request_duration_seconds = None
_consultas_total = None
_cache_hits_total = None
_cache_misses_total = None
_upstream_latency_seconds = None
_celery_tasks_total = None


def _build_metrics() -> None:
    global _http_requests_total, _http_request_duration_seconds
    global _consultas_total, _cache_hits_total, _cache_misses_total
    global _upstream_latency_seconds, _celery_tasks_total

    if _http_requests_total is not None:
        return

    _http_requests_total = Counter(
        "http_requests_total",
        "Total de requisições HTTP",
        ["method", "path", "status"],
        registry=_registry,
    )
    _http_request_duration_seconds = Histogram(
        "http_request_duration_seconds",
        "Duração das requisições HTTP",
        ["method", "path", "status"],
        registry=_registry,
        buckets=[0.05, 0.1, 0.5, 1, 3, 5, 10],
    )
    _consultas_total = Counter(
        "consultas_total",
        "Decisões do pipeline de consultas",
        ["tipo", "outcome"],
        registry=_registry,
    )
    _cache_hits_total = Counter(
        "consulta_cache_hits_total",
        "Cache hits de consultas",
        ["tipo"],
        registry=_registry,
    )
    _cache_misses_total = Counter(
        "consulta_cache_misses_total",
        "Cache misses de consultas",
        ["tipo"],
        registry=_registry,
    )
    _upstream_latency_seconds = Histogram(
        "upstream_request_duration_seconds",
        "Latência das chamadas à API externa",
        ["tipo", "success"],
        registry=_registry,
        buckets=[0.1, 0.5, 1, 3, 5, 10, 30],
    )
    _celery_tasks_total = Counter(
        "celery_tasks_total",
        "Total de tarefas Celery executadas",
        ["task", "status"],
        registry=_registry,
    )


def is_enabled() -> bool:
    """Métricas habilitadas globalmente."""
    return bool(get_settings().metrics_enabled)


def record_http_request(
    method: str,
    path: str,
    status: int,
    duration_seconds: float,
) -> None:
    """Registra métrica de request HTTP."""
    if not is_enabled():
        return
    _build_metrics()
    labels = {"method": method.upper(), "path": path, "status": str(status)}
    _http_requests_total.labels(**labels).inc()
    _http_request_duration_seconds.labels(**labels).observe(duration_seconds)


def record_consulta(tipo: str | None, outcome: str) -> None:
    """Registra a decisão final do pipeline (ok, upstream_error, rate_limited...)."""
    if not is_enabled():
        return
    _build_metrics()
    _consultas_total.labels(tipo=tipo or "unknown", outcome=outcome).inc()


def record_cache_hit(tipo: str) -> None:
    if not is_enabled():
        return
    _build_metrics()
    _cache_hits_total.labels(tipo=tipo).inc()


def record_cache_miss(tipo: str) -> None:
    if not is_enabled():
        return
    _build_metrics()
    _cache_misses_total.labels(tipo=tipo).inc()


def record_upstream_latency(tipo: str, success: bool, duration_seconds: float) -> None:
    if not is_enabled():
        return
    _build_metrics()
    _upstream_latency_seconds.labels(
        tipo=tipo, success=str(success).lower()
    ).observe(duration_seconds)


def record_celery_task(task: str, status: str) -> None:
    """Registra sucesso/falha de tarefa Celery."""
    if not is_enabled():
        return
    _build_metrics()
    _celery_tasks_total.labels(task=task, status=status).inc()


def get_metrics_payload() -> bytes:
    """Métricas no formato texto do Prometheus."""
    if not is_enabled():
        return b""
    _build_metrics()
    return generate_latest(_registry)
