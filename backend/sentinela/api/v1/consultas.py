"""
Endpoint de consultas (cpf, nome, numero).

Toda chamada passa pelo pipeline de admissão; o status HTTP só reflete
falhas de admissão. Falha da API externa é reportada no corpo (200).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.requests import Request

from sentinela.api.deps import get_admission_pipeline
from sentinela.core.security import (
    extract_api_key,
    extract_client_ip,
    extract_user_agent,
)
from sentinela.schemas.consulta import ConsultaResponse
from sentinela.services.consulta_pipeline import AdmissionPipeline, ConsultaRequest

router = APIRouter(tags=["Consultas"])

_QUERY_PARAMS = ("cpf", "q")


def build_consulta_request(request: Request) -> ConsultaRequest:
    params = {
        name: request.query_params[name]
        for name in _QUERY_PARAMS
        if name in request.query_params
    }
    return ConsultaRequest(
        api_key=extract_api_key(request),
        tipo=request.query_params.get("tipo"),
        params=params,
        client_ip=extract_client_ip(request),
        user_agent=extract_user_agent(request),
        accept=request.headers.get("accept"),
        accept_encoding=request.headers.get("accept-encoding"),
        accept_language=request.headers.get("accept-language"),
        method=request.method,
        path=request.url.path,
    )


@router.get(
    "/consultas",
    response_model=ConsultaResponse,
    summary="Consultar CPF, nome ou número",
    description="""
    Credencial via header `x-api-key`, query `apiKey` ou cookie `apiKey`.

    Parâmetros: `tipo` (cpf | nome | numero) e `cpf` (tipo=cpf) ou `q`.
    """,
)
async def consultar(
    request: Request,
    pipeline: AdmissionPipeline = Depends(get_admission_pipeline),
) -> JSONResponse:
    response = await pipeline.run(build_consulta_request(request))
    return JSONResponse(content=response.to_payload())
