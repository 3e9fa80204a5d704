"""Testes da verificação de integridade das respostas da API externa."""

from __future__ import annotations

from sentinela.security.integrity import (
    NO_RESULTS,
    RiskLevel,
    assess_package_risk,
    check_kind,
)

CREATOR = "@MutanoX"


def test_valid_cpf_package_is_low_risk() -> None:
    payload = {
        "sucesso": True,
        "criador": CREATOR,
        "dados": {"nome": "MARIA SILVA", "cpf": "12345678900"},
    }

    report = assess_package_risk(payload, "cpf")

    assert report.risk_level is RiskLevel.LOW
    assert report.issues == []
    assert report.to_dict()["isSecure"] is True
    assert report.recommendation == "Pacote válido"


def test_empty_package_is_high_risk() -> None:
    report = assess_package_risk({"sucesso": False, "criador": CREATOR}, "nome")

    assert report.risk_level is RiskLevel.HIGH
    assert "Pacote de resposta vazio sem dados" in report.issues
    assert report.recommendation == "Pacote requer revisão manual antes de ser usado"


def test_script_tag_is_critical() -> None:
    payload = {
        "sucesso": True,
        "criador": CREATOR,
        "resultado": [{"nome": "<script>alert(1)</script>", "cpf": "1"}],
    }

    report = assess_package_risk(payload, "nome")

    assert report.risk_level is RiskLevel.CRITICAL
    assert report.to_dict()["riskLevel"] == "CRITICAL"
    assert "Contém padrão de código executável perigoso" in report.issues


def test_creator_mismatch_is_reported() -> None:
    payload = {"sucesso": True, "criador": "@outro", "dados": {"nome": "A", "cpf": "12345678900"}}

    report = assess_package_risk(payload, "cpf")

    assert "Criador não corresponde: @outro" in report.issues
    assert "Falhas de integridade detectadas" in report.issues


def test_kind_checks_for_lists() -> None:
    assert check_kind({"resultado": []}, "nome") == [NO_RESULTS]
    assert check_kind({"resultado": [{"nome": "A"}, {"outro": 1}]}, "nome") == [
        "Resultado sem CPF ou Nome"
    ]
    assert check_kind({"resultado": [{"cpfCnpj": "123"}]}, "numero") == []


def test_cpf_with_wrong_digit_count_warns() -> None:
    assert check_kind({"dados": {"cpf": "123"}}, "cpf") == ["CPF não tem 11 dígitos"]


def test_many_issues_raise_risk_to_medium() -> None:
    payload = {
        "criador": "@x",
        "resultado": [{"a": 1}, {"b": 2}, {"c": 3}],
    }

    report = assess_package_risk(payload, "nome")

    # sucesso ausente, criador divergente, marcador de falha + 3 itens sem nome/cpf
    assert len(report.issues) == 6
    assert report.risk_level is RiskLevel.MEDIUM
