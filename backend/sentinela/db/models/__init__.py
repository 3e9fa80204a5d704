from sentinela.db.models.api_key import ApiKey
from sentinela.db.models.consulta_cache import ConsultaCache
from sentinela.db.models.audit_log import AuditLog

__all__ = [
    "ApiKey",
    "ConsultaCache",
    "AuditLog",
]
