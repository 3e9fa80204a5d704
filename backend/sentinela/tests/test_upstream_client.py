"""Testes do cliente da API externa (httpx.MockTransport)."""

from __future__ import annotations

import httpx
import pytest

from sentinela.services.upstream_client import (
    BooleanFlag,
    Inferred,
    TextFlag,
    WorldEcletixClient,
    read_success_indicator,
    resolve_success,
)


def _client(handler) -> WorldEcletixClient:
    return WorldEcletixClient(
        base_url="https://upstream.test",
        timeout_seconds=1,
        transport=httpx.MockTransport(handler),
    )


def test_success_indicator_variants() -> None:
    assert read_success_indicator({"sucesso": True}) == BooleanFlag(True)
    assert read_success_indicator({"sucesso": "ok"}) == TextFlag("ok")
    assert read_success_indicator({"dados": {"a": 1}}) == Inferred(True)
    assert read_success_indicator({}) == Inferred(False)


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"sucesso": True}, True),
        ({"sucesso": False, "dados": {"nome": "x"}}, False),
        ({"sucesso": "Sim"}, True),
        ({"sucesso": "nao", "resultado": [{"nome": "x"}]}, True),
        ({"sucesso": "nao"}, False),
        ({"resultados": [{"nome": "x"}]}, True),
        ({"resultado": []}, False),
    ],
)
def test_resolve_success(payload, expected) -> None:
    assert resolve_success(payload) is expected


@pytest.mark.asyncio
async def test_fetch_builds_endpoint_per_tipo() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, dict(request.url.params)))
        return httpx.Response(200, json={"sucesso": True, "dados": {"nome": "MARIA"}})

    client = _client(handler)
    result = await client.fetch("cpf", "12345678900")
    await client.fetch("nome", "Maria Silva")
    await client.fetch("numero", "11987654321")

    assert result.success is True
    assert result.payload["dados"]["nome"] == "MARIA"
    assert result.status_code == 200
    assert seen == [
        ("/api/consultarcpf", {"cpf": "12345678900"}),
        ("/api/nome-completo", {"q": "Maria Silva"}),
        ("/api/numero", {"q": "11987654321"}),
    ]


@pytest.mark.asyncio
async def test_http_error_keeps_upstream_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"erro": "Serviço indisponível"})

    result = await _client(handler).fetch("cpf", "12345678900")

    assert result.success is False
    assert result.status_code == 502
    assert result.error == "Serviço indisponível"


@pytest.mark.asyncio
async def test_http_error_without_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    result = await _client(handler).fetch("cpf", "12345678900")

    assert result.error == "Erro HTTP 500"
    assert result.payload is None


@pytest.mark.asyncio
async def test_timeout_becomes_unsuccessful_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = await _client(handler).fetch("nome", "Maria")

    assert result.success is False
    assert result.error == "Tempo limite excedido na API externa"


@pytest.mark.asyncio
async def test_connection_error_becomes_unsuccessful_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _client(handler).fetch("nome", "Maria")

    assert result.success is False
    assert result.error == "connection refused"


@pytest.mark.asyncio
async def test_malformed_json_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    result = await _client(handler).fetch("cpf", "12345678900")

    assert result.success is False
    assert result.error == "Resposta inválida da API externa"
