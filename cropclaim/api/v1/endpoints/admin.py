"""Admin review gate endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from cropclaim.api.dependencies import get_actor, get_admin_review_service
from cropclaim.core.auth import ActorContext
from cropclaim.schemas.responses import ApiResponse
from cropclaim.schemas.review import AdminForwardRequest, AdminRejectRequest
from cropclaim.services.admin_review_service import AdminReviewService
from cropclaim.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/reviews",
    response_model=ApiResponse,
    summary="List claims pending admin review",
    operation_id="list_pending_reviews",
)
async def list_pending_reviews(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    review_service: Annotated[AdminReviewService, Depends(get_admin_review_service)],
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    claims = await review_service.list_pending_reviews(actor, skip=skip, limit=limit)
    return create_api_response(data=claims, message="Pending reviews retrieved successfully", request=request)


@router.get(
    "/reviews/stats",
    response_model=ApiResponse,
    summary="Admin review statistics",
    operation_id="get_review_stats",
)
async def get_review_stats(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    review_service: Annotated[AdminReviewService, Depends(get_admin_review_service)],
) -> ApiResponse:
    stats = await review_service.get_review_stats(actor)
    return create_api_response(data=stats, message="Review statistics retrieved successfully", request=request)


@router.get(
    "/reviews/{claim_id}",
    response_model=ApiResponse,
    summary="Get a claim pending review",
    operation_id="get_claim_for_review",
)
async def get_claim_for_review(
    request: Request,
    claim_id: UUID,
    actor: Annotated[ActorContext, Depends(get_actor)],
    review_service: Annotated[AdminReviewService, Depends(get_admin_review_service)],
) -> ApiResponse:
    claim = await review_service.get_claim_for_review(actor, claim_id)
    return create_api_response(data=claim, message="Claim retrieved successfully", request=request)


@router.post(
    "/reviews/{claim_id}/forward",
    response_model=ApiResponse,
    summary="Forward the AI report to the insurer",
    operation_id="forward_ai_report",
)
async def forward_report(
    request: Request,
    claim_id: UUID,
    payload: AdminForwardRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    review_service: Annotated[AdminReviewService, Depends(get_admin_review_service)],
) -> ApiResponse:
    claim = await review_service.forward_report(
        actor, claim_id, notes=payload.notes, overrides=payload.overrides
    )
    return create_api_response(data=claim, message="AI report forwarded to insurer", request=request)


@router.post(
    "/reviews/{claim_id}/reject",
    response_model=ApiResponse,
    summary="Reject the AI report and request manual review",
    operation_id="reject_ai_report",
)
async def reject_report(
    request: Request,
    claim_id: UUID,
    payload: AdminRejectRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    review_service: Annotated[AdminReviewService, Depends(get_admin_review_service)],
) -> ApiResponse:
    claim = await review_service.reject_report(actor, claim_id, payload.reason, notes=payload.notes)
    return create_api_response(data=claim, message="AI report rejected; claim sent for manual review", request=request)
