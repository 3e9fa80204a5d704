"""
Schemas do endpoint de consultas.

Os nomes em camelCase fazem parte do contrato consumido pelo painel.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ConsultaResponse(BaseModel):
    """Resposta do pipeline de consultas."""

    success: bool = Field(..., description="Sucesso da consulta na API externa")
    data: Optional[Any] = Field(None, description="Payload devolvido (ou null)")
    tempoResposta: int = Field(..., description="Tempo de resposta em milissegundos")
    fromCache: bool = Field(..., description="Resposta servida do cache")
    error: Optional[str] = Field(None, description="Motivo da falha na API externa")
    integrity: Optional[Dict[str, Any]] = Field(
        None,
        description="Relatório de integridade (apenas quando a consulta falha)",
    )
    warnings: List[str] = Field(default_factory=list)
    hitCount: Optional[int] = Field(None, description="Leituras da entrada de cache")
    cacheAge: Optional[int] = Field(None, description="Idade da entrada de cache (ms)")

    def to_payload(self) -> Dict[str, Any]:
        """Serializa omitindo opcionais vazios; ``data`` é sempre presente."""
        payload = self.model_dump(exclude_none=True)
        payload["data"] = self.data
        return payload
