"""Claim intake engine and claim queries.

Intake runs synchronously in the submitting request:

1. Replay a cached response for a completed idempotency key, or claim
   the key with a pending ledger record.
2. Resolve the policy and the insurer the claim is routed to.
3. Check the uploaded file references.
4. In one transaction: insert the claim, its document rows and complete
   the ledger record with the serialized response.
5. After commit: enqueue the AI tasks. Enqueue failures are logged and
   never change the outcome of the submission.
"""

import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.auth import ActorContext, Capability
from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.exceptions import (
    AppError,
    ClaimNotFoundError,
    ClaimPersistError,
    FileRejectedError,
    ValidationError,
)
from cropclaim.database.enums import AiTaskType, ClaimStatus, DocumentKind, VerificationStatus
from cropclaim.database.models import Claim
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.schemas.claims import ClaimCreateRequest, ClaimListResponse, ClaimResponse
from cropclaim.services.ai_task_queue import AiTaskQueue, EnqueueResult
from cropclaim.services.base_service import BaseService
from cropclaim.services.collaborators import (
    AuditSink,
    ExtensionFileInspector,
    FileInspector,
    LoggingAuditSink,
    safe_record,
)
from cropclaim.services.idempotency_service import IdempotencyService
from cropclaim.services.policy_resolver import PolicyResolution, PolicyResolver
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

CLAIM_ID_ATTEMPTS = 5


class ClaimService(BaseService):
    """Creates claims and serves claim projections."""

    def __init__(
        self,
        session: AsyncSession,
        task_queue: Optional[AiTaskQueue] = None,
        file_inspector: Optional[FileInspector] = None,
        audit: Optional[AuditSink] = None,
        clock: Clock = system_clock,
    ):
        """Initialize the service.

        Args:
            session: SQLAlchemy async session for the request
            task_queue: AI task queue; without one no AI tasks are enqueued
            file_inspector: Upload validation/scanning collaborator
            audit: Audit sink
            clock: Time source
        """
        self.claims = ClaimRepository(session)
        super().__init__(repository=self.claims)
        self.session = session
        self.task_queue = task_queue
        self.file_inspector = file_inspector or ExtensionFileInspector()
        self.audit = audit or LoggingAuditSink()
        self.clock = clock
        self.ledger = IdempotencyService(session, clock=clock)
        self.resolver = PolicyResolver(session)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def create_claim(
        self,
        request: ClaimCreateRequest,
        farmer_id: UUID,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Submit a claim.

        Args:
            request: Validated claim payload, including file references
            farmer_id: Authenticated farmer submitting the claim
            idempotency_key: Optional client token for safe retries

        Returns:
            The claim projection as a JSON-safe dict. A replay with the same
            key returns the cached dict unchanged.

        Raises:
            PolicyResolutionError: Policy not found, not owned, inactive,
                outside coverage or without an insurer
            FileRejectedError: An uploaded file failed validation or scanning
            IdempotencyConflictError: Another submission owns the key
            IdempotencyKeyReuseError: The key was used for a different request
            ClaimPersistError: The claim could not be stored
        """
        return await self.execute(
            request=request,
            farmer_id=farmer_id,
            idempotency_key=idempotency_key,
        )

    def validate(self, request: ClaimCreateRequest, farmer_id: UUID, idempotency_key: Optional[str] = None):
        if farmer_id is None:
            raise ValidationError("farmer_id is required")
        if idempotency_key is not None and not idempotency_key.strip():
            raise ValidationError("Idempotency key must not be blank")

    async def run(
        self,
        request: ClaimCreateRequest,
        farmer_id: UUID,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        snapshot = {"farmer_id": str(farmer_id), **request.snapshot()}

        if idempotency_key:
            cached = await self.ledger.check(idempotency_key, snapshot)
            if cached is not None:
                LOGGER.info(
                    "Returning cached claim for idempotency key",
                    extra={"idempotency_key": idempotency_key},
                )
                return cached
            await self.ledger.create(idempotency_key, snapshot)

        try:
            resolution = await self.resolver.resolve(
                farmer_id=farmer_id,
                candidate=request.policy,
                incident_date=request.date_of_incident,
                explicit_choice=request.chosen_policy_id,
            )
            await self._inspect_files(request)
            claim, response = await self._persist(request, farmer_id, resolution, idempotency_key)
        except AppError as e:
            await self._abort(idempotency_key, e.message)
            raise
        except Exception as e:
            LOGGER.error(f"Failed to persist claim: {e}", exc_info=True, extra={"farmer_id": str(farmer_id)})
            await self._abort(idempotency_key, str(e))
            raise ClaimPersistError(f"Failed to create claim: {e}", original_error=e)

        LOGGER.info(
            f"Created claim {claim.claim_id} for farmer {farmer_id}, assigned to insurer {claim.assigned_to_id}",
            extra={
                "claim_id": claim.claim_id,
                "farmer_id": str(farmer_id),
                "policy_id": str(resolution.policy_id),
                "assigned_to_id": str(resolution.insurer_id),
            },
        )

        results = await self._enqueue_ai_tasks(claim, request, resolution)
        for result in results:
            if not result.ok:
                LOGGER.error(
                    f"Failed to enqueue {result.task_type.value} task for claim {claim.claim_id}: {result.error}",
                    extra={"claim_id": claim.claim_id, "task_type": result.task_type.value},
                )

        await safe_record(
            self.audit,
            farmer_id,
            "claim.created",
            "claim",
            str(claim.id),
            details={
                "claim_id": claim.claim_id,
                "policy_id": str(resolution.policy_id),
                "chosen_policy_id": str(resolution.chosen_policy_id),
                "assigned_to_id": str(resolution.insurer_id),
                "ai_tasks": [r.task_type.value for r in results if r.ok],
            },
        )
        return response

    async def _abort(self, idempotency_key: Optional[str], message: str) -> None:
        await self.session.rollback()
        if idempotency_key:
            await self.ledger.mark_failed(idempotency_key, message)

    async def _inspect_files(self, request: ClaimCreateRequest) -> None:
        refs: List[Tuple[str, DocumentKind]] = [
            *((path, DocumentKind.DOCUMENT) for path in request.documents),
            *((path, DocumentKind.IMAGE) for path in request.images),
        ]
        for path, kind in refs:
            validation = await self.file_inspector.validate(path, kind)
            if not validation.valid:
                raise FileRejectedError(f"File '{path}' rejected: {validation.error}")
            scan = await self.file_inspector.scan(path)
            if not scan.clean:
                raise FileRejectedError(f"File '{path}' failed security scan: {scan.result}")

    async def _generate_claim_id(self, now: datetime) -> str:
        """``CLM-<year>-<6 digits>-<3 digits>``; the unique index is the real guard."""
        millis = int(now.timestamp() * 1000)
        for _ in range(CLAIM_ID_ATTEMPTS):
            candidate = f"CLM-{now.year}-{str(millis)[-6:]}-{secrets.randbelow(1000):03d}"
            if not await self.claims.claim_id_exists(candidate):
                return candidate
        raise ClaimPersistError("Could not allocate a unique claim id")

    async def _persist(
        self,
        request: ClaimCreateRequest,
        farmer_id: UUID,
        resolution: PolicyResolution,
        idempotency_key: Optional[str],
    ) -> Tuple[Claim, Dict[str, Any]]:
        now = self.clock.now()
        claim_number = await self._generate_claim_id(now)

        claim = await self.claims.create(
            claim_id=claim_number,
            farmer_id=farmer_id,
            policy_id=resolution.policy_id,
            chosen_policy_id=resolution.chosen_policy_id,
            assigned_to_id=resolution.insurer_id,
            description=request.description,
            location_of_incident=request.location_of_incident,
            date_of_incident=request.date_of_incident,
            date_of_claim=now,
            amount_claimed=request.amount_claimed,
            status=ClaimStatus.PENDING,
            verification_status=VerificationStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await self.claims.add_documents(claim.id, request.documents, DocumentKind.DOCUMENT, now)
        await self.claims.add_documents(claim.id, request.images, DocumentKind.IMAGE, now)

        claim = await self.claims.get_with_relations(claim.id)
        response = ClaimResponse.from_claim(claim).model_dump(mode="json")

        if idempotency_key:
            await self.ledger.mark_completed(idempotency_key, claim.id, response, commit=False)

        await self.session.commit()
        return claim, response

    async def _enqueue_ai_tasks(
        self,
        claim: Claim,
        request: ClaimCreateRequest,
        resolution: PolicyResolution,
    ) -> List[EnqueueResult]:
        """Enqueue ocr and fraud_detection when images exist, satellite when a location exists."""
        if self.task_queue is None:
            LOGGER.warning(f"No AI task queue configured; claim {claim.claim_id} will stay Pending")
            return []

        images = list(request.images)
        documents = list(request.documents)
        planned: List[Tuple[AiTaskType, Dict[str, Any]]] = []

        if images:
            planned.append((AiTaskType.OCR, {"images": images, "documents": documents}))
        if request.location_of_incident:
            planned.append((
                AiTaskType.SATELLITE,
                {
                    "location": request.location_of_incident,
                    "date_of_incident": request.date_of_incident.isoformat(),
                    "images": images,
                    "policy_images": resolution.policy_images,
                    "sum_insured": float(resolution.sum_insured),
                },
            ))
        if images:
            planned.append((
                AiTaskType.FRAUD_DETECTION,
                {
                    "claim": {
                        "description": request.description,
                        "location_of_incident": request.location_of_incident,
                        "date_of_incident": request.date_of_incident.isoformat(),
                        "amount_claimed": request.amount_claimed,
                    },
                    "images": images,
                    "documents": documents,
                    "policy_images": resolution.policy_images,
                    "policy_id": str(resolution.chosen_policy_id),
                },
            ))

        if not planned:
            LOGGER.warning(
                f"Claim {claim.claim_id} has no images or location; no AI tasks enqueued",
                extra={"claim_id": claim.claim_id},
            )

        results = []
        for task_type, input_data in planned:
            results.append(await self.task_queue.try_enqueue(claim.id, task_type, input_data))
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_claim(self, claim_uuid: UUID, actor: ActorContext) -> ClaimResponse:
        """Get a claim visible to the actor.

        Farmers see their own claims, insurers the claims assigned to
        them and admins every claim.

        Raises:
            ClaimNotFoundError: Missing or not visible to the actor
        """
        claim = await self.claims.get_with_relations(claim_uuid)
        if claim is None or not self._can_view(claim, actor):
            raise ClaimNotFoundError(f"Claim {claim_uuid} not found")
        return ClaimResponse.from_claim(claim)

    async def list_farmer_claims(
        self, actor: ActorContext, skip: int = 0, limit: int = 50
    ) -> ClaimListResponse:
        actor.require(Capability.VIEW_OWN_CLAIMS)
        claims = await self.claims.list_by_farmer(actor.actor_id, skip=skip, limit=limit)
        return ClaimListResponse(
            claims=[ClaimResponse.from_claim(c) for c in claims],
            total=len(claims),
            skip=skip,
            limit=limit,
        )

    async def list_insurer_claims(
        self,
        actor: ActorContext,
        status: Optional[ClaimStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> ClaimListResponse:
        actor.require(Capability.DECIDE_CLAIM)
        insurer_id = actor.require_insurer()
        claims, total = await self.claims.list_for_insurer(insurer_id, status=status, skip=skip, limit=limit)
        return ClaimListResponse(
            claims=[ClaimResponse.from_claim(c) for c in claims],
            total=total,
            skip=skip,
            limit=limit,
        )

    @staticmethod
    def _can_view(claim: Claim, actor: ActorContext) -> bool:
        if actor.can(Capability.REVIEW_AI_REPORT):
            return True
        if actor.can(Capability.DECIDE_CLAIM) and claim.assigned_to_id == actor.insurer_id:
            return True
        return actor.can(Capability.VIEW_OWN_CLAIMS) and claim.farmer_id == actor.actor_id
