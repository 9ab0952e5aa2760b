"""AI task operator endpoints: dead-letter listing and manual retry."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from cropclaim.api.dependencies import get_actor, get_task_queue
from cropclaim.core.auth import ActorContext, Capability
from cropclaim.schemas.ai_tasks import AiTaskListResponse, AiTaskResponse
from cropclaim.schemas.responses import ApiResponse
from cropclaim.services.ai_task_queue import AiTaskQueue
from cropclaim.utils.logging import get_logger
from cropclaim.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/failed",
    response_model=ApiResponse,
    summary="List dead-lettered AI tasks",
    operation_id="list_failed_ai_tasks",
)
async def list_failed_tasks(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    task_queue: Annotated[AiTaskQueue, Depends(get_task_queue)],
    limit: int = Query(100, ge=1, le=500),
) -> ApiResponse:
    actor.require(Capability.MANAGE_AI_TASKS)
    tasks = await task_queue.get_failed_tasks(limit)
    return create_api_response(
        data=AiTaskListResponse(
            tasks=[AiTaskResponse.model_validate(t) for t in tasks],
            total=len(tasks),
        ),
        message="Failed AI tasks retrieved successfully",
        request=request,
    )


@router.get(
    "/claims/{claim_id}",
    response_model=ApiResponse,
    summary="List the AI tasks of a claim",
    operation_id="list_claim_ai_tasks",
)
async def list_claim_tasks(
    request: Request,
    claim_id: UUID,
    actor: Annotated[ActorContext, Depends(get_actor)],
    task_queue: Annotated[AiTaskQueue, Depends(get_task_queue)],
) -> ApiResponse:
    actor.require(Capability.MANAGE_AI_TASKS)
    tasks = await task_queue.get_tasks_for_claim(claim_id)
    return create_api_response(
        data=AiTaskListResponse(
            tasks=[AiTaskResponse.model_validate(t) for t in tasks],
            total=len(tasks),
        ),
        message="AI tasks retrieved successfully",
        request=request,
    )


@router.get(
    "/{task_id}",
    response_model=ApiResponse,
    summary="Get AI task status",
    operation_id="get_ai_task",
)
async def get_task(
    request: Request,
    task_id: UUID,
    actor: Annotated[ActorContext, Depends(get_actor)],
    task_queue: Annotated[AiTaskQueue, Depends(get_task_queue)],
) -> ApiResponse:
    actor.require(Capability.MANAGE_AI_TASKS)
    task = await task_queue.get_task(task_id)
    return create_api_response(
        data=AiTaskResponse.model_validate(task),
        message="AI task retrieved successfully",
        request=request,
    )


@router.post(
    "/{task_id}/retry",
    response_model=ApiResponse,
    summary="Manually retry a dead-lettered AI task",
    operation_id="retry_ai_task",
)
async def retry_task(
    request: Request,
    task_id: UUID,
    actor: Annotated[ActorContext, Depends(get_actor)],
    task_queue: Annotated[AiTaskQueue, Depends(get_task_queue)],
) -> ApiResponse:
    actor.require(Capability.MANAGE_AI_TASKS)
    task = await task_queue.retry_task(task_id)
    LOGGER.info(f"AI task {task_id} retried by {actor.actor_id}")
    return create_api_response(
        data=AiTaskResponse.model_validate(task),
        message="AI task queued for retry",
        request=request,
    )
