"""Insurer decision endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from cropclaim.api.dependencies import get_actor, get_claim_service, get_insurer_service
from cropclaim.core.auth import ActorContext
from cropclaim.database.enums import ClaimStatus
from cropclaim.schemas.responses import ApiResponse
from cropclaim.schemas.review import (
    CancelClaimRequest,
    ClaimStatusUpdateRequest,
    FraudFlagRequest,
    PayoutRequest,
    VerificationReportRequest,
)
from cropclaim.services.claim_service import ClaimService
from cropclaim.services.insurer_service import InsurerDecisionService
from cropclaim.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/claims",
    response_model=ApiResponse,
    summary="List claims assigned to the insurer",
    operation_id="list_insurer_claims",
)
async def list_insurer_claims(
    request: Request,
    actor: Annotated[ActorContext, Depends(get_actor)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
    status: Optional[ClaimStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    claims = await claim_service.list_insurer_claims(actor, status=status, skip=skip, limit=limit)
    return create_api_response(data=claims, message="Claims retrieved successfully", request=request)


@router.patch(
    "/claims/{claim_id}/status",
    response_model=ApiResponse,
    summary="Update claim status",
    operation_id="update_claim_status",
)
async def update_claim_status(
    request: Request,
    claim_id: UUID,
    payload: ClaimStatusUpdateRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.update_status(actor, claim_id, payload.status, notes=payload.notes)
    return create_api_response(data=claim, message=f"Claim status updated to {payload.status.value}", request=request)


@router.put(
    "/claims/{claim_id}/verification/draft",
    response_model=ApiResponse,
    summary="Save a verification report draft",
    operation_id="save_verification_draft",
)
async def save_verification_draft(
    request: Request,
    claim_id: UUID,
    payload: VerificationReportRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.save_draft(actor, claim_id, payload)
    return create_api_response(data=claim, message="Verification draft saved", request=request)


@router.post(
    "/claims/{claim_id}/verification",
    response_model=ApiResponse,
    summary="Submit the verification report",
    operation_id="submit_verification_report",
)
async def submit_verification_report(
    request: Request,
    claim_id: UUID,
    payload: VerificationReportRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.submit_report(actor, claim_id, payload)
    return create_api_response(data=claim, message="Verification report submitted", request=request)


@router.post(
    "/claims/{claim_id}/fraud-flag",
    response_model=ApiResponse,
    summary="Flag a claim as fraud suspect",
    operation_id="flag_claim_fraud",
)
async def flag_fraud(
    request: Request,
    claim_id: UUID,
    payload: FraudFlagRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.flag_fraud(actor, claim_id, reason=payload.reason)
    return create_api_response(data=claim, message="Claim flagged for fraud review", request=request)


@router.post(
    "/claims/{claim_id}/payout",
    response_model=ApiResponse,
    summary="Record the payout of an approved claim",
    operation_id="process_claim_payout",
)
async def process_payout(
    request: Request,
    claim_id: UUID,
    payload: PayoutRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.process_payout(actor, claim_id, payload)
    return create_api_response(data=claim, message="Payout processed", request=request)


@router.post(
    "/claims/{claim_id}/cancel",
    response_model=ApiResponse,
    summary="Cancel a claim",
    operation_id="cancel_claim",
)
async def cancel_claim(
    request: Request,
    claim_id: UUID,
    payload: CancelClaimRequest,
    actor: Annotated[ActorContext, Depends(get_actor)],
    insurer_service: Annotated[InsurerDecisionService, Depends(get_insurer_service)],
) -> ApiResponse:
    claim = await insurer_service.cancel_claim(actor, claim_id, reason=payload.reason)
    return create_api_response(data=claim, message="Claim cancelled", request=request)
