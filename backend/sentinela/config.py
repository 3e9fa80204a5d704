"""
Configurações centralizadas da aplicação usando Pydantic Settings.

Este módulo carrega e valida todas as variáveis de ambiente do arquivo .env
e fornece uma interface type-safe para acessá-las em toda a aplicação.
"""

from pathlib import Path
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List

# Caminho base do projeto
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / "backend" / ".env"

ADMIN_KEY_MIN_LENGTH = 20


class Settings(BaseSettings):
    """Configurações da aplicação."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Sentinela Consultas"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    allowed_origins: List[str] = ["http://localhost:3000"]
    docs_access_token: str | None = None

    # Credencial de administrador (nunca persistida no registro de chaves)
    admin_key: str

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "sentinela"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_pool_size: int = 20
    postgres_max_overflow: int = 10

    @property
    def postgres_url(self) -> str:
        """URL de conexão PostgreSQL para SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def sync_postgres_url(self) -> str:
        """URL de conexão síncrona para Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None

    @property
    def redis_url(self) -> str:
        """URL de conexão Redis."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Ledger anti-replay / anti-flood
    ledger_backend: str = "memory"
    security_nonce_ttl_ms: int = 5000
    security_fingerprint_ttl_ms: int = 30000
    security_flood_threshold: int = 10
    security_flood_interval_ms: int = 100
    security_flood_reset_ms: int = 10000
    security_flood_idle_ms: int = 60000
    ledger_sweep_interval_seconds: int = 300

    # API externa (world-ecletix)
    external_api_url: str = "https://world-ecletix.onrender.com"
    upstream_timeout_seconds: float = 30.0
    upstream_expected_creator: str = "@MutanoX"
    upstream_user_agent: str = "Sentinela-Consultas/0.1"

    # Cache de consultas (segundos)
    cache_ttl_cpf_seconds: int = 24 * 60 * 60
    cache_ttl_numero_seconds: int = 2 * 60 * 60
    cache_ttl_nome_seconds: int = 1 * 60 * 60

    # Auditoria
    audit_log_retention_days: int = 90

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # Observability
    metrics_enabled: bool = True

    @field_validator("admin_key")
    @classmethod
    def _validate_admin_key(cls, value: str) -> str:
        if len(value) < ADMIN_KEY_MIN_LENGTH:
            raise ValueError(
                f"ADMIN_KEY deve ter pelo menos {ADMIN_KEY_MIN_LENGTH} caracteres"
            )
        return value

    @field_validator("ledger_backend")
    @classmethod
    def _validate_ledger_backend(cls, value: str) -> str:
        normalized = value.lower().strip()
        if normalized not in {"memory", "redis"}:
            raise ValueError("LEDGER_BACKEND deve ser 'memory' ou 'redis'")
        return normalized

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Retorna instância cached de Settings.

    Usa lru_cache para garantir que as configurações sejam carregadas
    apenas uma vez e reutilizadas em toda a aplicação.

    Returns:
        Settings: Instância de configurações validadas
    """
    return Settings()
