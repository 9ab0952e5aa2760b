"""Admin review gate.

Claims whose AI tasks have all completed wait in
``AI_Processed_Admin_Review``. An admin either forwards the AI report to
the assigned insurer (optionally correcting AI fields) or rejects it,
which sends the claim to manual field review.
"""

from datetime import datetime, time
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.auth import ActorContext, Capability
from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.exceptions import ClaimNotFoundError, InvalidTransitionError, ValidationError
from cropclaim.database.enums import VerificationStatus
from cropclaim.database.models import Claim
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.repositories.user_repository import InsurerRepository
from cropclaim.schemas.claims import ClaimListResponse, ClaimResponse
from cropclaim.schemas.review import AdminOverride, ReviewStats
from cropclaim.services.collaborators import (
    AuditSink,
    LoggingAuditSink,
    LoggingNotificationSink,
    NotificationSink,
    safe_record,
)
from cropclaim.services.notifications import safe_notify
from cropclaim.services.verification import ensure_verification_transition
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

VS = VerificationStatus


def append_note(notes: Optional[List[Dict[str, Any]]], author_id: UUID, kind: str, text: str, at: datetime) -> List[Dict[str, Any]]:
    """Return a new notes list with one entry appended."""
    return [
        *(notes or []),
        {"author_id": str(author_id), "kind": kind, "text": text, "created_at": at.isoformat()},
    ]


class AdminReviewService:
    """Service for the admin review gate."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationSink] = None,
        audit: Optional[AuditSink] = None,
        clock: Clock = system_clock,
    ):
        self.session = session
        self.claims = ClaimRepository(session)
        self.insurers = InsurerRepository(session)
        self.notifier = notifier or LoggingNotificationSink()
        self.audit = audit or LoggingAuditSink()
        self.clock = clock

    async def list_pending_reviews(
        self, actor: ActorContext, skip: int = 0, limit: int = 20
    ) -> ClaimListResponse:
        """List claims waiting for admin review, oldest first."""
        actor.require(Capability.REVIEW_AI_REPORT)
        claims, total = await self.claims.list_by_verification_status(
            VS.AI_PROCESSED_ADMIN_REVIEW, skip=skip, limit=limit
        )
        return ClaimListResponse(
            claims=[ClaimResponse.from_claim(c) for c in claims],
            total=total,
            skip=skip,
            limit=limit,
        )

    async def get_claim_for_review(self, actor: ActorContext, claim_id: UUID) -> ClaimResponse:
        """Get one claim with its full AI output.

        Raises:
            ClaimNotFoundError: No such claim
            InvalidTransitionError: The claim is not pending admin review
        """
        actor.require(Capability.REVIEW_AI_REPORT)
        claim = await self._load_pending(claim_id)
        return ClaimResponse.from_claim(claim)

    async def forward_report(
        self,
        actor: ActorContext,
        claim_id: UUID,
        notes: Optional[str] = None,
        overrides: Optional[AdminOverride] = None,
    ) -> ClaimResponse:
        """Forward the AI report to the assigned insurer.

        Args:
            actor: Admin performing the review
            claim_id: Claim UUID
            notes: Optional admin notes appended to the claim
            overrides: Optional corrections of the AI fields

        Returns:
            Updated claim projection
        """
        actor.require(Capability.REVIEW_AI_REPORT)
        claim = await self._load_pending(claim_id)
        ensure_verification_transition(claim.verification_status, VS.AI_SATELLITE_PROCESSED)

        now = self.clock.now()
        values: Dict[str, Any] = {
            "verification_status": VS.AI_SATELLITE_PROCESSED,
            "admin_override_at": now,
            "updated_at": now,
        }
        if notes:
            values["notes"] = append_note(claim.notes, actor.actor_id, "admin_review", notes, now)
        if overrides is not None and not overrides.is_empty():
            if overrides.damage_percent is not None:
                values["ai_damage_percent"] = overrides.damage_percent
            if overrides.recommended_amount is not None:
                values["ai_recommended_amount"] = overrides.recommended_amount
            if overrides.validation_flags is not None:
                flags = dict(claim.ai_validation_flags or {})
                flags["admin"] = overrides.validation_flags
                values["ai_validation_flags"] = flags
            values["admin_override_reason"] = "Admin reviewed and forwarded AI report to Service Provider"

        await self._apply(claim, values)

        LOGGER.info(
            f"Admin {actor.actor_id} forwarded AI report for claim {claim.claim_id} "
            f"to insurer {claim.assigned_to_id}",
            extra={"claim_id": claim.claim_id, "admin_id": str(actor.actor_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "admin.forward_ai_report",
            "claim",
            str(claim.id),
            details={
                "claim_id": claim.claim_id,
                "assigned_to_id": str(claim.assigned_to_id),
                "notes": notes,
                "overrides": overrides.model_dump() if overrides else None,
            },
            before={"verification_status": VS.AI_PROCESSED_ADMIN_REVIEW.value},
            after={"verification_status": VS.AI_SATELLITE_PROCESSED.value},
        )

        insurer_user = await self.insurers.get_notification_target(claim.assigned_to_id)
        await safe_notify(
            self.notifier,
            insurer_user,
            "AI Report Ready for Verification",
            f"The AI report for Claim #{claim.claim_id} has been reviewed and forwarded to you.",
            "info",
        )
        await safe_notify(
            self.notifier,
            claim.farmer_id,
            "Claim Forwarded to Insurer",
            f"Your claim #{claim.claim_id} has passed AI review and was forwarded to your insurer.",
            "info",
        )
        return await self._projection(claim.id)

    async def reject_report(
        self,
        actor: ActorContext,
        claim_id: UUID,
        reason: str,
        notes: Optional[str] = None,
    ) -> ClaimResponse:
        """Reject the AI report and send the claim to manual review."""
        actor.require(Capability.REVIEW_AI_REPORT)
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        claim = await self._load_pending(claim_id)
        ensure_verification_transition(claim.verification_status, VS.MANUAL_REVIEW)

        now = self.clock.now()
        values: Dict[str, Any] = {
            "verification_status": VS.MANUAL_REVIEW,
            "admin_override_at": now,
            "admin_override_reason": f"Admin rejected AI report: {reason.strip()}",
            "updated_at": now,
        }
        if notes:
            values["notes"] = append_note(claim.notes, actor.actor_id, "admin_rejection", notes, now)

        await self._apply(claim, values)

        LOGGER.info(
            f"Admin {actor.actor_id} rejected AI report for claim {claim.claim_id} and sent for manual review",
            extra={"claim_id": claim.claim_id, "admin_id": str(actor.actor_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "admin.reject_ai_report",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id, "reason": reason, "notes": notes},
            before={"verification_status": VS.AI_PROCESSED_ADMIN_REVIEW.value},
            after={"verification_status": VS.MANUAL_REVIEW.value},
        )

        insurer_user = await self.insurers.get_notification_target(claim.assigned_to_id)
        await safe_notify(
            self.notifier,
            insurer_user,
            "Claim Requires Manual Review",
            f"The AI report for Claim #{claim.claim_id} was rejected by an admin. "
            f"A manual field verification is required.",
            "warning",
        )
        await safe_notify(
            self.notifier,
            claim.farmer_id,
            "Claim Sent for Manual Review",
            f"Your claim #{claim.claim_id} will be verified manually by your insurer.",
            "info",
        )
        return await self._projection(claim.id)

    async def get_review_stats(self, actor: ActorContext) -> ReviewStats:
        """Counts of pending and processed admin reviews."""
        actor.require(Capability.REVIEW_AI_REPORT)
        now = self.clock.now()
        start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)

        pending = await self.claims.count_where(
            Claim.verification_status == VS.AI_PROCESSED_ADMIN_REVIEW
        )
        forwarded_today = await self.claims.count_admin_decisions(VS.AI_SATELLITE_PROCESSED, start_of_day)
        rejected_today = await self.claims.count_admin_decisions(VS.MANUAL_REVIEW, start_of_day)
        total_processed = await self.claims.count_where(
            Claim.verification_status.in_([VS.AI_SATELLITE_PROCESSED, VS.MANUAL_REVIEW]),
            Claim.admin_override_at.is_not(None),
        )
        return ReviewStats(
            pending_reviews=pending,
            forwarded_today=forwarded_today,
            rejected_today=rejected_today,
            total_processed=total_processed,
        )

    async def _load_pending(self, claim_id: UUID) -> Claim:
        claim = await self.claims.get_with_relations(claim_id)
        if claim is None or claim.deleted_at is not None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        if claim.verification_status != VS.AI_PROCESSED_ADMIN_REVIEW:
            raise InvalidTransitionError(
                f"Claim {claim.claim_id} is not pending admin review "
                f"(verification status: {claim.verification_status.value})"
            )
        return claim

    async def _apply(self, claim: Claim, values: Dict[str, Any]) -> None:
        claim_number = claim.claim_id
        updated = await self.claims.update_fields(
            claim.id, values, verification_status=VS.AI_PROCESSED_ADMIN_REVIEW
        )
        if updated != 1:
            await self.session.rollback()
            raise InvalidTransitionError(f"Claim {claim_number} was already reviewed")
        await self.session.commit()

    async def _projection(self, claim_id: UUID) -> ClaimResponse:
        claim = await self.claims.get_with_relations(claim_id)
        return ClaimResponse.from_claim(claim)
