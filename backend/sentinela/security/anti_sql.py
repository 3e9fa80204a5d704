"""
Heurísticas anti-abuso para entradas de consulta.

Funções puras, sem estado compartilhado:
  - detecção de SQL injection por palavras-chave e padrões estruturais
  - validação de formato de cpf / nome / numero / tipo
  - mascaramento de campos sensíveis antes de logs e auditoria
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

TIPOS_VALIDOS = ("cpf", "nome", "numero")

NOME_MIN_LENGTH = 3
NOME_MAX_LENGTH = 100

SQL_KEYWORDS = (
    "SELECT", "INSERT", "UPDATE", "DELETE", "DROP", "TRUNCATE",
    "UNION", "JOIN", "WHERE", "HAVING", "GROUP BY", "ORDER BY",
    "OR", "AND", "NOT", "NULL", "IS", "LIKE", "IN", "EXISTS",
    "CREATE", "ALTER", "RENAME", "DESC", "ASC", "LIMIT", "OFFSET",
    "EXEC", "EXECUTE", "CALL", "SHOW", "DESCRIBE", "EXPLAIN",
    "--", "/*", "*/", ";", "'", '"', "`", "#",
    "XP_CMDSHELL", "SP_", "XP_", "SP_PASSWORD", "SP_ADDNEWUSER", "SP_CONFIGURE",
    "DATABASE()", "VERSION()", "USER()", "LOAD_FILE()", "INTO OUTFILE",
)

SQL_PATTERNS = (
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP)\s", re.IGNORECASE),
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP)\s*\(", re.IGNORECASE),
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP)\s+.*\bFROM\b", re.IGNORECASE),
    re.compile(r"\b(OR|AND)\s+\d+\s*=\s*\d+", re.IGNORECASE),
    re.compile(r"\b(OR|AND)\s*[\"'].*[\"']", re.IGNORECASE),
    re.compile(r"\b(OR|AND)\s*\w+\s*(=|LIKE)", re.IGNORECASE),
    re.compile(r"UNION\s+SELECT", re.IGNORECASE),
    re.compile(r"--"),
    re.compile(r"/\*.*\*/"),
    re.compile(r";\s*(DROP|DELETE|INSERT|UPDATE|TRUNCATE|ALTER)", re.IGNORECASE),
)

_WORD_KEYWORD = re.compile(r"^[A-Z ]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_NON_DIGITS = re.compile(r"\D")


def _keyword_matcher(keyword: str):
    # Palavras-chave alfabéticas só casam como palavra inteira ("OR" não casa em "JORGE").
    if _WORD_KEYWORD.match(keyword):
        pattern = re.compile(rf"(?<![A-Z0-9_]){re.escape(keyword)}(?![A-Z0-9_])")
        return lambda upper: pattern.search(upper) is not None
    return lambda upper: keyword in upper


_KEYWORD_MATCHERS = tuple(_keyword_matcher(keyword) for keyword in SQL_KEYWORDS)


@dataclass(frozen=True)
class ShapeValidation:
    """Resultado da validação de formato de uma entrada."""

    is_valid: bool
    error: Optional[str] = None
    sql_risk: bool = False


def only_digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def contains_sql_keywords(value: str) -> bool:
    """Detecta palavra-chave SQL (case-insensitive)."""
    if not value:
        return False
    upper = value.upper()
    return any(matches(upper) for matches in _KEYWORD_MATCHERS)


def detect_sql_injection(value: str) -> bool:
    """Detecta padrões estruturais de injeção (tautologias, UNION SELECT, ...)."""
    if not value:
        return False
    return any(pattern.search(value) for pattern in SQL_PATTERNS)


def looks_like_sql_injection(value: str) -> bool:
    return contains_sql_keywords(value) or detect_sql_injection(value)


def validate_tipo(tipo: Optional[str]) -> ShapeValidation:
    if not tipo:
        return ShapeValidation(False, "Tipo não fornecido")
    if tipo.lower() not in TIPOS_VALIDOS:
        return ShapeValidation(
            False,
            f"Tipo inválido. Tipos disponíveis: {', '.join(TIPOS_VALIDOS)}",
        )
    return ShapeValidation(True)


def validate_cpf(cpf: Optional[str]) -> ShapeValidation:
    if not cpf:
        return ShapeValidation(False, "CPF não fornecido")
    if len(only_digits(cpf)) != 11:
        return ShapeValidation(False, "CPF deve conter 11 dígitos numéricos")
    return ShapeValidation(True)


def validate_nome(nome: Optional[str]) -> ShapeValidation:
    if not nome:
        return ShapeValidation(False, "Nome não fornecido")
    if len(nome) < NOME_MIN_LENGTH:
        return ShapeValidation(
            False, f"Nome deve conter pelo menos {NOME_MIN_LENGTH} caracteres"
        )
    if len(nome) > NOME_MAX_LENGTH:
        return ShapeValidation(
            False, f"Nome muito longo (máximo {NOME_MAX_LENGTH} caracteres)"
        )
    if looks_like_sql_injection(nome):
        return ShapeValidation(False, "Nome contém caracteres SQL inválidos", sql_risk=True)
    return ShapeValidation(True)


def validate_numero(numero: Optional[str]) -> ShapeValidation:
    if not numero:
        return ShapeValidation(False, "Número não fornecido")
    digits = only_digits(numero)
    if len(digits) < 10 or len(digits) > 11:
        return ShapeValidation(
            False, "Número deve conter 10 ou 11 dígitos numéricos (com DDD)"
        )
    return ShapeValidation(True)


_VALIDATORS = {
    "cpf": validate_cpf,
    "nome": validate_nome,
    "numero": validate_numero,
    "tipo": validate_tipo,
}


def validate_shape(value: Optional[str], kind: str) -> ShapeValidation:
    """
    Valida o formato de uma entrada segundo o tipo informado.

    Args:
        value: Valor bruto recebido
        kind: Um de ``cpf``, ``nome``, ``numero`` ou ``tipo``

    Returns:
        ShapeValidation com ``is_valid`` e a mensagem de erro legível
    """
    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise ValueError(f"Tipo de validação desconhecido: {kind}")
    return validator(value)


def normalize_query(tipo: str, value: str) -> str:
    """Reduz o valor bruto à forma enviada para a API externa."""
    if tipo in ("cpf", "numero"):
        return only_digits(value)
    return value.strip()


def mask_value(value: str) -> str:
    """Ex.: ``12345678900`` -> ``123***00``."""
    if len(value) <= 5:
        return value
    return f"{value[:3]}***{value[-2:]}"


def mask_sensitive(
    record: Mapping[str, Any],
    fields: Iterable[str] = ("cpf", "cpfNumber"),
) -> dict[str, Any]:
    """Mascara campos sensíveis de um dicionário (retorna cópia)."""
    masked = dict(record)
    for field in fields:
        value = masked.get(field)
        if isinstance(value, str):
            masked[field] = mask_value(value)
    return masked


def sanitize_for_logging(value: Optional[str], max_length: int = 500) -> str:
    """Remove caracteres de controle, escapa aspas e limita o tamanho."""
    if not value:
        return ""
    sanitized = _CONTROL_CHARS.sub("", value)
    sanitized = sanitized.replace("'", "\\'").replace('"', '\\"')
    return sanitized[:max_length]
