"""Inspection endpoints.

Each stage exposes the processors it would dispatch to, in dispatch order,
as the JSON list of processor descriptors.  Only GET is routed; FastAPI
answers other methods with 405.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from kubediag.api.schemas import HealthResponse
from kubediag.models.abnormal import ProcessorType

router = APIRouter()


async def _list_processors(request: Request, processor_type: ProcessorType) -> list[dict[str, Any]]:
    engine = request.app.state.engines[processor_type]
    processors = await engine.list_processors()
    return [processor.to_dict() for processor in processors]


@router.get("/informationcollectors")
async def list_information_collectors(request: Request) -> list[dict[str, Any]]:
    return await _list_processors(request, ProcessorType.INFORMATION_COLLECTOR)


@router.get("/diagnosers")
async def list_diagnosers(request: Request) -> list[dict[str, Any]]:
    return await _list_processors(request, ProcessorType.DIAGNOSER)


@router.get("/recoverers")
async def list_recoverers(request: Request) -> list[dict[str, Any]]:
    return await _list_processors(request, ProcessorType.RECOVERER)


health_router = APIRouter()


@health_router.get("/healthz", response_model=HealthResponse)
async def healthz(request: Request) -> HealthResponse:
    from kubediag import __version__

    return HealthResponse(
        status="ok",
        version=__version__,
        node_name=request.app.state.node_name,
        stages=[engine.stage.name for engine in request.app.state.engines.values()],
    )
