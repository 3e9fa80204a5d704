"""
Verificação de integridade de pacotes da API externa.

Inspeciona a estrutura da resposta (campos esperados, criador) e procura
assinaturas de código executável no payload serializado. O resultado é
sempre consultivo: nunca bloqueia a resposta ao cliente.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from sentinela.config import get_settings
from sentinela.security.anti_sql import only_digits

MEDIUM_ISSUE_THRESHOLD = 5
HIGH_ISSUE_THRESHOLD = 10

DANGEROUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
    re.compile(r"eval\(", re.IGNORECASE),
    re.compile(r"document\.cookie", re.IGNORECASE),
)

INVALID_STRUCTURE = "Estrutura de resposta inválida"
NO_RESULTS = "Nenhum resultado encontrado"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


RECOMMENDATIONS = {
    RiskLevel.LOW: "Pacote válido",
    RiskLevel.MEDIUM: "Pacote possui problemas menores mas pode ser usado com cautela",
    RiskLevel.HIGH: "Pacote requer revisão manual antes de ser usado",
    RiskLevel.CRITICAL: "Pacote requer revisão manual antes de ser usado",
}


class _Permissive(BaseModel):
    model_config = ConfigDict(extra="allow")


class CpfDados(_Permissive):
    nome: Optional[str] = None
    cpf: Optional[str] = None


class NomeItem(_Permissive):
    cpf: Optional[str] = None
    nome: Optional[str] = None


class NumeroItem(_Permissive):
    cpfCnpj: Optional[str] = None
    nome: Optional[str] = None


_NOME_ITEMS = TypeAdapter(list[NomeItem])
_NUMERO_ITEMS = TypeAdapter(list[NumeroItem])


@dataclass
class IntegrityReport:
    risk_level: RiskLevel
    issues: list[str] = field(default_factory=list)
    recommendation: str = RECOMMENDATIONS[RiskLevel.LOW]

    @property
    def is_secure(self) -> bool:
        return self.risk_level is RiskLevel.LOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSecure": self.is_secure,
            "riskLevel": self.risk_level.value,
            "issues": list(self.issues),
            "recommendation": self.recommendation,
        }


def _results_of(payload: dict[str, Any]) -> Any:
    if "resultado" in payload:
        return payload.get("resultado")
    return payload.get("resultados")


def check_structure(payload: dict[str, Any], tipo: str) -> list[str]:
    """Campos mínimos e criador esperado."""
    expected_creator = get_settings().upstream_expected_creator
    issues: list[str] = []

    if not payload.get("sucesso"):
        issues.append('Resposta não contém campo "sucesso"')
    if not payload.get("criador"):
        issues.append('Resposta não contém campo "criador"')

    if tipo == "cpf":
        if not payload.get("dados"):
            issues.append('Resposta CPF não contém campo "dados"')
    elif not _results_of(payload):
        issues.append(f'Resposta {tipo} não contém campo "resultado"')

    if payload.get("criador") != expected_creator:
        issues.append(f"Criador não corresponde: {payload.get('criador')}")

    if issues:
        issues.append("Falhas de integridade detectadas")
    return issues


def _check_cpf(payload: dict[str, Any]) -> list[str]:
    dados = payload.get("dados")
    if dados is None:
        return ["Resultado sem dados básicos (nome ou CPF)"]
    try:
        parsed = CpfDados.model_validate(dados)
    except ValidationError:
        return [INVALID_STRUCTURE]

    warnings = []
    if parsed.cpf and len(only_digits(parsed.cpf)) != 11:
        warnings.append("CPF não tem 11 dígitos")
    if not parsed.nome and not parsed.cpf:
        warnings.append("Resultado sem dados básicos (nome ou CPF)")
    return warnings


def _check_items(payload: dict[str, Any], adapter: TypeAdapter, keys: tuple[str, str], message: str) -> list[str]:
    results = _results_of(payload)
    if results is None:
        results = payload.get("dados")

    if isinstance(results, list):
        try:
            items = adapter.validate_python(results)
        except ValidationError:
            return [INVALID_STRUCTURE]
        if not items:
            return [NO_RESULTS]
        return [
            message
            for item in items
            if not any(getattr(item, key) for key in keys)
        ]

    if isinstance(results, dict) and any(results.get(key) for key in keys):
        return []
    return [NO_RESULTS]


def check_kind(payload: dict[str, Any], tipo: str) -> list[str]:
    """Validações específicas por tipo de consulta."""
    if tipo == "cpf":
        return _check_cpf(payload)
    if tipo == "nome":
        return _check_items(payload, _NOME_ITEMS, ("cpf", "nome"), "Resultado sem CPF ou Nome")
    if tipo == "numero":
        return _check_items(
            payload, _NUMERO_ITEMS, ("cpfCnpj", "nome"), "Resultado sem CPF/CNPJ ou Nome"
        )
    return []


def has_executable_code(payload: Any) -> bool:
    serialized = json.dumps(payload, ensure_ascii=False, default=str)
    return any(pattern.search(serialized) for pattern in DANGEROUS_PATTERNS)


def assess_package_risk(payload: Any, tipo: str) -> IntegrityReport:
    """
    Classifica o risco de um pacote devolvido pela API externa.

    Regras:
      - mais de 5 problemas: MEDIUM; mais de 10: HIGH
      - pacote sem ``dados`` e sem ``resultado``: HIGH
      - qualquer assinatura de código executável: CRITICAL
    """
    if not isinstance(payload, dict):
        payload = {"resultado": payload} if payload else {}

    issues = check_structure(payload, tipo)
    issues.extend(check_kind(payload, tipo))

    risk = RiskLevel.LOW
    if len(issues) > MEDIUM_ISSUE_THRESHOLD:
        risk = RiskLevel.MEDIUM
    if len(issues) > HIGH_ISSUE_THRESHOLD:
        risk = RiskLevel.HIGH

    if not payload.get("dados") and not _results_of(payload):
        issues.append("Pacote de resposta vazio sem dados")
        risk = RiskLevel.HIGH

    if has_executable_code(payload):
        issues.append("Contém padrão de código executável perigoso")
        risk = RiskLevel.CRITICAL

    return IntegrityReport(
        risk_level=risk,
        issues=issues,
        recommendation=RECOMMENDATIONS[risk],
    )
