"""Claim submission and query endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, status

from cropclaim.api.dependencies import get_actor, get_claim_service
from cropclaim.core.auth import ActorContext, Capability
from cropclaim.schemas.claims import ClaimCreateRequest
from cropclaim.schemas.responses import ApiResponse
from cropclaim.services.claim_service import ClaimService
from cropclaim.utils.logging import get_logger
from cropclaim.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a claim",
    operation_id="create_claim",
)
async def create_claim(
    request: Request,
    payload: ClaimCreateRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
) -> ApiResponse:
    """Submit a claim; replays with the same Idempotency-Key return the first result."""
    actor.require(Capability.SUBMIT_CLAIM)
    claim = await claim_service.create_claim(payload, actor.actor_id, idempotency_key=idempotency_key)
    return create_api_response(
        data=claim,
        message="Claim submitted successfully",
        request=request,
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List my claims",
    operation_id="list_my_claims",
)
async def list_my_claims(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    claims = await claim_service.list_farmer_claims(actor, skip=skip, limit=limit)
    return create_api_response(
        data=claims,
        message="Claims retrieved successfully",
        request=request,
    )


@router.get(
    "/{claim_id}",
    response_model=ApiResponse,
    summary="Get claim details",
    operation_id="get_claim",
)
async def get_claim(
    request: Request,
    claim_id: UUID,
    actor: Annotated[ActorContext, Depends(get_actor)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.get_claim(claim_id, actor)
    return create_api_response(
        data=claim,
        message="Claim retrieved successfully",
        request=request,
    )
