from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse, StreamingResponse

from .frontend.manager import DeviceRegistry
from .models import DeviceInfo, ErrorResponse, HealthResponse
from .service import ExpositionWriter

router = APIRouter()


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_writer(request: Request) -> ExpositionWriter:
    return request.app.state.writer


@router.get("/", include_in_schema=False)
def index() -> RedirectResponse:
    return RedirectResponse("/metrics", status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Polls every registered frontend and returns the text exposition format. "
    "Always 200; frontends or readings that fail are left out.",
    response_class=StreamingResponse,
    responses={500: {"model": ErrorResponse, "description": "Internal server error"}},
    tags=["Metrics"],
)
def metrics(writer: ExpositionWriter = Depends(get_writer)) -> StreamingResponse:
    return StreamingResponse(writer.iter_chunks(), media_type="text/plain")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["Health"],
)
def health(registry: DeviceRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(status="ok", devices=len(registry))


@router.get(
    "/devices",
    response_model=List[DeviceInfo],
    summary="List registered frontends",
    tags=["Devices"],
)
def list_devices(registry: DeviceRegistry = Depends(get_registry)) -> List[DeviceInfo]:
    return [
        DeviceInfo(adapter=f.identity.adapter, frontend=f.identity.frontend, path=f.path)
        for f in registry.frontends()
    ]
