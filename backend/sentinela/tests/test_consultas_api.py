"""Testes de rota do endpoint de consultas (pipeline completo sobre fakes)."""

from __future__ import annotations

import asyncio

import httpx

from sentinela.security.ledger_store import FINGERPRINTS
from sentinela.tests.conftest import ADMIN_KEY
from sentinela.tests.harness import build_harness

URL = "/api/v1/consultas"
CLIENT_KEY = "c" * 32


def test_admin_cpf_lookup_is_cached_on_repeat():
    harness = build_harness()
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "123.456.789-00"}

    first = client.get(URL, params=params, headers={"x-api-key": ADMIN_KEY})
    second = client.get(URL, params=params, headers={"x-api-key": ADMIN_KEY})

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["fromCache"] is False
    assert body["data"]["dados"]["nome"] == "MARIA DA SILVA"
    assert body["warnings"] == []

    assert second.status_code == 200
    cached = second.json()
    assert cached["fromCache"] is True
    assert cached["hitCount"] == 1
    assert cached["cacheAge"] == 0
    assert cached["data"] == body["data"]

    assert len(harness.upstream_calls) == 1
    call = harness.upstream_calls[0]
    assert call.url.path == "/api/consultarcpf"
    assert call.url.params["cpf"] == "12345678900"
    assert harness.audit_store.actions() == ["consulta", "cache_hit"]
    assert harness.audit_store.rows[0].api_key_ref == "ADMIN_KEY"


def test_missing_key_returns_401_and_is_audited():
    harness = build_harness()
    client = harness.client()

    response = client.get(URL, params={"tipo": "cpf", "cpf": "12345678900"})

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "API-KEY não fornecida",
        "code": "MISSING_API_KEY",
    }
    assert harness.audit_store.actions() == ["unauthorized_access"]
    assert harness.audit_store.rows[0].api_key_ref == "anonymous"
    assert harness.upstream_calls == []


def test_unknown_key_returns_401_invalid_api_key():
    harness = build_harness()
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "cpf", "cpf": "12345678900"},
        headers={"x-api-key": "desconhecida-0000000000"},
    )

    assert response.status_code == 401
    body = response.json()
    assert body["code"] == "INVALID_API_KEY"
    assert body["error"] == "API-KEY inválida"
    assert harness.audit_store.actions() == ["unauthorized_access"]
    assert harness.audit_store.rows[0].api_key_ref == "desc****0000"


def test_deactivated_key_is_rejected():
    harness = build_harness()
    harness.keys.add(CLIENT_KEY, ativo=False, last_reset=harness.clock.now())
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "cpf", "cpf": "12345678900"},
        headers={"x-api-key": CLIENT_KEY},
    )

    assert response.status_code == 401
    assert response.json()["error"] == "API-KEY desativada"


def test_short_name_fails_validation():
    harness = build_harness()
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "nome", "q": "a"},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "3 caracteres" in body["error"]
    assert harness.audit_store.actions() == ["invalid_input_validation"]
    assert harness.upstream_calls == []


def test_invalid_tipo_lists_available_types():
    harness = build_harness()
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "placa", "q": "ABC1234"},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_TYPE"
    assert body["tiposDisponiveis"] == ["cpf", "nome", "numero"]
    assert harness.audit_store.actions() == ["invalid_tipo"]


def test_sql_in_name_is_blocked_and_audited():
    harness = build_harness()
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "nome", "q": "Maria' OR 1=1 --"},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert harness.audit_store.actions() == [
        "invalid_input_validation",
        "sql_injection_detected",
    ]
    assert harness.audit_store.rows[-1].severity == "warning"
    assert harness.upstream_calls == []


def test_common_names_containing_keywords_reach_upstream():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "sucesso": True,
                "criador": "@MutanoX",
                "resultado": [{"cpf": "12345678900", "nome": "JORGE FERNANDO"}],
            },
        )

    harness = build_harness(handler)
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "nome", "q": "  Jorge Fernando  "},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    call = harness.upstream_calls[0]
    assert call.url.path == "/api/nome-completo"
    assert call.url.params["q"] == "Jorge Fernando"


def test_hourly_quota_allows_last_unit_then_rejects():
    harness = build_harness()
    record = harness.keys.add(
        CLIENT_KEY,
        rate_limit=10,
        used_this_hour=9,
        last_reset=harness.clock.now(),
    )
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "12345678900"}

    allowed = client.get(URL, params=params, headers={"x-api-key": CLIENT_KEY})
    rejected = client.get(URL, params=params, headers={"x-api-key": CLIENT_KEY})

    assert allowed.status_code == 200
    assert rejected.status_code == 429
    body = rejected.json()
    assert body["code"] == "RATE_LIMIT_EXCEEDED"
    assert body["remainingHour"] == 0
    assert body["error"] == "Limite de requisições por hora excedido"

    stored = harness.keys.rows[record.id]
    assert stored.used_this_hour == 10
    assert stored.used_today == 1
    assert "rate_limit_hour" in harness.audit_store.actions()


def test_hourly_window_resets_after_an_hour():
    harness = build_harness()
    harness.keys.add(
        CLIENT_KEY,
        rate_limit=10,
        used_this_hour=10,
        last_reset=harness.clock.now(),
    )
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "12345678900"}

    assert client.get(URL, params=params, headers={"x-api-key": CLIENT_KEY}).status_code == 429

    harness.clock.advance(hours=1, seconds=1)
    response = client.get(URL, params=params, headers={"x-api-key": CLIENT_KEY})

    assert response.status_code == 200


def test_identical_burst_is_flagged_as_flood():
    harness = build_harness()
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "12345678900"}

    statuses = [
        client.get(URL, params=params, headers={"x-api-key": ADMIN_KEY}).status_code
        for _ in range(11)
    ]

    assert statuses[:10] == [200] * 10
    assert statuses[10] == 429
    assert harness.audit_store.actions()[-1] == "flood_attack_detected"
    assert len(harness.upstream_calls) == 1


def test_flood_counter_restarts_after_quiet_period():
    harness = build_harness()
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "12345678900"}

    for _ in range(10):
        client.get(URL, params=params, headers={"x-api-key": ADMIN_KEY})
    harness.clock.advance(seconds=11)

    response = client.get(URL, params=params, headers={"x-api-key": ADMIN_KEY})

    assert response.status_code == 200


def test_upstream_failure_is_reported_in_body_with_integrity():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"sucesso": False, "erro": "CPF não encontrado"})

    harness = build_harness(handler)
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "cpf", "cpf": "12345678900"},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["fromCache"] is False
    assert body["error"] == "CPF não encontrado"
    assert body["integrity"]["riskLevel"] == "HIGH"
    assert body["integrity"]["isSecure"] is False
    assert "Pacote de resposta vazio sem dados" in body["warnings"]

    assert harness.cache_store.rows == {}
    assert harness.audit_store.actions() == ["consulta"]
    assert harness.audit_store.rows[0].sucesso is False


def test_upstream_timeout_returns_unsuccessful_body_without_integrity():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timeout", request=request)

    harness = build_harness(handler)
    client = harness.client()

    response = client.get(
        URL,
        params={"tipo": "numero", "q": "(11) 98765-4321"},
        headers={"x-api-key": ADMIN_KEY},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Tempo limite excedido na API externa"
    assert "integrity" not in body
    assert body["warnings"] == []


def test_credential_is_read_from_query_and_cookie():
    harness = build_harness()
    harness.keys.add(CLIENT_KEY, last_reset=harness.clock.now())
    client = harness.client()

    by_query = client.get(
        URL,
        params={"tipo": "cpf", "cpf": "12345678900", "apiKey": CLIENT_KEY},
    )
    by_cookie = client.get(
        URL,
        params={"tipo": "cpf", "cpf": "98765432100"},
        headers={"Cookie": f"apiKey={CLIENT_KEY}"},
    )

    assert by_query.status_code == 200
    assert by_cookie.status_code == 200
    stored = next(iter(harness.keys.rows.values()))
    assert stored.used_this_hour == 2
    assert stored.total_requests == 2


def test_client_switching_ip_keeps_one_device_fingerprint():
    harness = build_harness()
    client = harness.client()
    params = {"tipo": "cpf", "cpf": "12345678900"}

    for ip in ("198.51.100.7", "203.0.113.9"):
        response = client.get(
            URL, params=params, headers={"x-api-key": ADMIN_KEY, "X-Forwarded-For": ip}
        )
        assert response.status_code == 200

    entries = asyncio.run(harness.ledger.store.items(FINGERPRINTS))
    assert len(entries) == 1
    assert entries[0][1]["ip"] == "198.51.100.7"
