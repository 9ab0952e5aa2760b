"""Insurer decision engine.

Insurers act only on claims assigned to them. Every write is a
conditional partial update guarded on the status the decision was made
against, so a concurrent AI write or a second insurer request cannot be
overwritten silently.
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.auth import ActorContext, Capability
from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.config import PipelineSettings, settings
from cropclaim.core.exceptions import (
    ClaimNotFoundError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    PayoutError,
    PayoutExceedsSumInsuredError,
    RejectionReasonRequiredError,
    ValidationError,
)
from cropclaim.database.enums import ClaimStatus, PayoutStatus, VerificationStatus
from cropclaim.database.models import Claim
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.repositories.policy_repository import PolicyRepository
from cropclaim.schemas.claims import ClaimResponse
from cropclaim.schemas.review import PayoutRequest, VerificationReportRequest
from cropclaim.services.admin_review_service import append_note
from cropclaim.services.collaborators import (
    AuditSink,
    LoggingAuditSink,
    LoggingNotificationSink,
    NotificationSink,
    safe_record,
)
from cropclaim.services.notifications import notify_claim_status_change, safe_notify
from cropclaim.services.verification import ensure_status_transition, ensure_verification_transition
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

CS = ClaimStatus
VS = VerificationStatus

CONFIRMED_DAMAGE = frozenset({"yes", "partial", "confirmed"})


class InsurerDecisionService:
    """Service for insurer verification, decisions and settlement."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationSink] = None,
        audit: Optional[AuditSink] = None,
        clock: Clock = system_clock,
        rules: Optional[PipelineSettings] = None,
    ):
        self.session = session
        self.claims = ClaimRepository(session)
        self.policies = PolicyRepository(session)
        self.notifier = notifier or LoggingNotificationSink()
        self.audit = audit or LoggingAuditSink()
        self.clock = clock
        self.rules = rules or settings.pipeline

    async def update_status(
        self,
        actor: ActorContext,
        claim_id: UUID,
        status: ClaimStatus,
        notes: Optional[str] = None,
    ) -> ClaimResponse:
        """Move a claim to a new business status.

        Rejections of claims with significant AI-assessed damage need a
        detailed reason; above the fraud threshold the claim is also
        flagged ``fraud_suspect`` for audit.

        Raises:
            InvalidTransitionError: Illegal status change
            RejectionReasonRequiredError: Rejection reason too short
        """
        claim = await self._load_assigned(actor, claim_id, Capability.DECIDE_CLAIM)
        target = ClaimStatus(status)
        if target == CS.RESOLVED:
            raise InvalidTransitionError("A claim is resolved by processing its payout")
        ensure_status_transition(claim.status, target)

        now = self.clock.now()
        values: Dict[str, Any] = {"status": target, "updated_at": now}
        if notes:
            values["notes"] = append_note(claim.notes, actor.actor_id, "insurer_decision", notes, now)
        if target == CS.REJECTED and self._check_rejection(claim, notes):
            self._escalate_to_fraud(claim, values, now)

        before = _state_of({}, claim)
        await self._commit_update(claim, values, status=claim.status)

        LOGGER.info(
            f"Insurer {actor.insurer_id} changed claim {claim.claim_id} status "
            f"{before['status']} -> {target.value}",
            extra={"claim_id": claim.claim_id, "insurer_id": str(actor.insurer_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.status_updated",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id, "notes": notes},
            before=before,
            after=_state_of(values, claim),
        )
        await notify_claim_status_change(self.notifier, claim.farmer_id, claim.claim_id, target, notes)
        return await self._projection(claim.id)

    async def save_draft(
        self,
        actor: ActorContext,
        claim_id: UUID,
        report: VerificationReportRequest,
    ) -> ClaimResponse:
        """Save an in-progress verification report; the claim goes under review."""
        claim = await self._load_assigned(actor, claim_id, Capability.DECIDE_CLAIM)
        ensure_status_transition(claim.status, CS.UNDER_REVIEW)

        now = self.clock.now()
        values = {
            "verification_data": {**report.model_dump(), "last_updated": now.isoformat()},
            "status": CS.UNDER_REVIEW,
            "updated_at": now,
        }
        before_status = claim.status
        await self._commit_update(claim, values, status=before_status)

        LOGGER.info(f"Saved verification draft for claim {claim.claim_id}")
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.verification_draft_saved",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id},
            before={"status": ClaimStatus(before_status).value},
            after={"status": CS.UNDER_REVIEW.value},
        )
        return await self._projection(claim.id)

    async def submit_report(
        self,
        actor: ActorContext,
        claim_id: UUID,
        report: VerificationReportRequest,
    ) -> ClaimResponse:
        """Submit the field verification report and decide the claim.

        Confirmed or partial damage approves the claim; anything else
        rejects it under the same rules as a direct rejection.
        """
        if not report.damage_confirmation:
            raise ValidationError("Damage confirmation is required to submit a verification report")

        claim = await self._load_assigned(actor, claim_id, Capability.DECIDE_CLAIM)
        target = CS.APPROVED if report.damage_confirmation in CONFIRMED_DAMAGE else CS.REJECTED
        ensure_verification_transition(claim.verification_status, VS.VERIFIED)
        ensure_status_transition(claim.status, target)

        now = self.clock.now()
        submitted = {**report.model_dump(), "last_updated": now.isoformat()}
        values: Dict[str, Any] = {
            "verification_data": submitted,
            "inspection_report": {
                **report.model_dump(),
                "inspector_id": str(actor.actor_id),
                "submitted_at": now.isoformat(),
            },
            "verification_status": VS.VERIFIED,
            "status": target,
            "updated_at": now,
        }
        if target == CS.REJECTED and self._check_rejection(claim, report.verification_notes):
            self._escalate_to_fraud(claim, values, now)

        before = _state_of({}, claim)
        await self._commit_update(
            claim, values, status=claim.status, verification_status=claim.verification_status
        )

        LOGGER.info(
            f"Verification report submitted for claim {claim.claim_id}: "
            f"damage_confirmation={report.damage_confirmation}, status={target.value}",
            extra={"claim_id": claim.claim_id, "insurer_id": str(actor.insurer_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.verification_submitted",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id, "report": report.model_dump()},
            before=before,
            after=_state_of(values, claim),
        )
        await notify_claim_status_change(
            self.notifier, claim.farmer_id, claim.claim_id, target, report.verification_notes
        )
        return await self._projection(claim.id)

    async def flag_fraud(
        self,
        actor: ActorContext,
        claim_id: UUID,
        reason: Optional[str] = None,
    ) -> ClaimResponse:
        """Mark a claim as a fraud suspect."""
        claim = await self._load_assigned(actor, claim_id, Capability.DECIDE_CLAIM)
        ensure_status_transition(claim.status, CS.FRAUD_SUSPECT)

        now = self.clock.now()
        values: Dict[str, Any] = {"status": CS.FRAUD_SUSPECT, "updated_at": now}
        self._escalate_to_fraud(claim, values, now)
        if reason:
            values["notes"] = append_note(claim.notes, actor.actor_id, "fraud_flag", reason, now)

        before = _state_of({}, claim)
        await self._commit_update(claim, values, status=claim.status)

        LOGGER.warning(
            f"Claim {claim.claim_id} flagged as fraud suspect by insurer {actor.insurer_id}",
            extra={"claim_id": claim.claim_id, "insurer_id": str(actor.insurer_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.fraud_flagged",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id, "reason": reason},
            before=before,
            after=_state_of(values, claim),
        )
        await notify_claim_status_change(self.notifier, claim.farmer_id, claim.claim_id, CS.FRAUD_SUSPECT)
        return await self._projection(claim.id)

    async def process_payout(
        self,
        actor: ActorContext,
        claim_id: UUID,
        payout: PayoutRequest,
    ) -> ClaimResponse:
        """Record the settlement of an approved claim and resolve it.

        The payout is written once; the amount may not exceed the sum
        insured of the policy the claim was routed through.

        Raises:
            PayoutError: Claim not approved or already paid
            PayoutExceedsSumInsuredError: Amount above the sum insured
        """
        claim = await self._load_assigned(actor, claim_id, Capability.PROCESS_PAYOUT)
        if claim.payout_status is not None:
            raise PayoutError(f"Payout for claim {claim.claim_id} has already been processed")
        if claim.status != CS.APPROVED:
            raise PayoutError(
                f"Payout can only be processed for approved claims (claim {claim.claim_id} is {claim.status.value})"
            )

        amount = Decimal(str(payout.amount)).quantize(Decimal("0.01"))
        if amount <= 0:
            raise PayoutError("Payout amount must be positive")
        policy = await self.policies.get_by_id(claim.chosen_policy_id)
        if policy is None:
            raise PayoutError(f"Policy for claim {claim.claim_id} no longer exists")
        if amount > policy.sum_insured:
            raise PayoutExceedsSumInsuredError(
                f"Payout amount {amount} exceeds the policy sum insured {policy.sum_insured}"
            )

        now = self.clock.now()
        values = {
            "payout_status": PayoutStatus.PAID.value,
            "payout_transaction_id": payout.transaction_id,
            "payout_amount": amount,
            "payout_date": now,
            "status": CS.RESOLVED,
            "resolution_details": f"Payout Processed. Txn: {payout.transaction_id}. Notes: {payout.notes or 'None'}",
            "resolution_date": now,
            "updated_at": now,
        }
        await self._commit_update(claim, values, status=CS.APPROVED, payout_status=None)

        LOGGER.info(
            f"Payout of {amount} processed for claim {claim.claim_id} (txn {payout.transaction_id})",
            extra={"claim_id": claim.claim_id, "insurer_id": str(actor.insurer_id)},
        )
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.payout_processed",
            "claim",
            str(claim.id),
            details={
                "claim_id": claim.claim_id,
                "amount": str(amount),
                "transaction_id": payout.transaction_id,
                "notes": payout.notes,
            },
            before={"status": CS.APPROVED.value, "payout_status": None},
            after={"status": CS.RESOLVED.value, "payout_status": PayoutStatus.PAID.value},
        )
        await safe_notify(
            self.notifier,
            claim.farmer_id,
            "Claim Payout Processed",
            f"A payout of {amount} for your claim #{claim.claim_id} has been processed. "
            f"Transaction ID: {payout.transaction_id}",
            "success",
        )
        return await self._projection(claim.id)

    async def cancel_claim(
        self,
        actor: ActorContext,
        claim_id: UUID,
        reason: Optional[str] = None,
    ) -> ClaimResponse:
        """Soft-cancel a claim."""
        claim = await self._load_assigned(actor, claim_id, Capability.CANCEL_CLAIM)
        ensure_status_transition(claim.status, CS.CANCELLED)

        now = self.clock.now()
        values: Dict[str, Any] = {"status": CS.CANCELLED, "deleted_at": now, "updated_at": now}
        if reason:
            values["notes"] = append_note(claim.notes, actor.actor_id, "cancellation", reason, now)
        before_status = claim.status
        await self._commit_update(claim, values, status=before_status)

        LOGGER.info(f"Claim {claim.claim_id} cancelled by {actor.actor_id}")
        await safe_record(
            self.audit,
            actor.actor_id,
            "claim.cancelled",
            "claim",
            str(claim.id),
            details={"claim_id": claim.claim_id, "reason": reason},
            before={"status": ClaimStatus(before_status).value},
            after={"status": CS.CANCELLED.value},
        )
        await notify_claim_status_change(self.notifier, claim.farmer_id, claim.claim_id, CS.CANCELLED, reason)
        return await self._projection(claim.id)

    def _check_rejection(self, claim: Claim, reason: Optional[str]) -> bool:
        """Apply the rejection friction rules.

        Returns:
            True when the rejection must also flag the claim as a fraud suspect
        """
        damage = claim.ai_damage_percent or 0.0
        if damage > self.rules.rejection_friction_damage_percent:
            if len((reason or "").strip()) < self.rules.rejection_reason_min_length:
                raise RejectionReasonRequiredError(
                    f"Rejecting a claim with {damage:g}% AI-assessed damage requires a reason "
                    f"of at least {self.rules.rejection_reason_min_length} characters"
                )
        return damage > self.rules.rejection_fraud_damage_percent

    @staticmethod
    def _escalate_to_fraud(claim: Claim, values: Dict[str, Any], now) -> None:
        if claim.verification_status != VS.FRAUD_SUSPECT:
            values["verification_status"] = VS.FRAUD_SUSPECT
        values["fraud_flagged_at"] = now

    async def _load_assigned(self, actor: ActorContext, claim_id: UUID, capability: Capability) -> Claim:
        """Load a live claim the actor may act on.

        Insurers see only claims assigned to them; other roles holding the
        capability act on any claim.
        """
        actor.require(capability)
        claim = await self.claims.get_with_relations(claim_id)
        if claim is None or claim.deleted_at is not None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        if actor.can(Capability.DECIDE_CLAIM) and claim.assigned_to_id != actor.require_insurer():
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        return claim

    async def _commit_update(self, claim: Claim, values: Dict[str, Any], **conditions: Any) -> None:
        claim_number = claim.claim_id
        updated = await self.claims.update_fields(claim.id, values, deleted_at=None, **conditions)
        if updated != 1:
            await self.session.rollback()
            raise ConcurrentUpdateError(
                f"Claim {claim_number} was modified concurrently; reload and retry"
            )
        await self.session.commit()

    async def _projection(self, claim_id: UUID) -> ClaimResponse:
        claim = await self.claims.get_with_relations(claim_id)
        return ClaimResponse.from_claim(claim)


def _state_of(values: Dict[str, Any], claim: Claim) -> Dict[str, Any]:
    status = values.get("status", claim.status)
    verification = values.get("verification_status", claim.verification_status)
    return {"status": ClaimStatus(status).value, "verification_status": VerificationStatus(verification).value}
