"""Queue depth and SLO monitoring endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from cropclaim.api.dependencies import get_actor, get_monitoring_service
from cropclaim.core.auth import ActorContext, Capability
from cropclaim.schemas.responses import ApiResponse
from cropclaim.services.monitoring_service import MonitoringService
from cropclaim.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "",
    response_model=ApiResponse,
    summary="AI queue and SLO report",
    operation_id="get_monitoring_report",
)
async def get_monitoring_report(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    monitoring_service: Annotated[MonitoringService, Depends(get_monitoring_service)],
) -> ApiResponse:
    actor.require(Capability.VIEW_MONITORING)
    report = await monitoring_service.run_checks()
    return create_api_response(data=report, message="Monitoring report generated", request=request)


@router.get(
    "/queue",
    response_model=ApiResponse,
    summary="AI task queue depth",
    operation_id="get_queue_depth",
)
async def get_queue_depth(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    monitoring_service: Annotated[MonitoringService, Depends(get_monitoring_service)],
) -> ApiResponse:
    actor.require(Capability.VIEW_MONITORING)
    depth = await monitoring_service.get_queue_depth()
    return create_api_response(data=depth, message="Queue depth retrieved", request=request)
