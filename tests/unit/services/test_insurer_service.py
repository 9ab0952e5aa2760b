"""Unit tests for the insurer decision engine."""

from decimal import Decimal

import pytest

from cropclaim.core.auth import ActorContext, Role
from cropclaim.core.exceptions import (
    AuthorizationError,
    ClaimNotFoundError,
    InvalidTransitionError,
    PayoutError,
    PayoutExceedsSumInsuredError,
    RejectionReasonRequiredError,
    ValidationError,
)
from cropclaim.database.enums import ClaimStatus, VerificationStatus
from cropclaim.schemas.review import PayoutRequest, VerificationReportRequest
from cropclaim.services.insurer_service import InsurerDecisionService

CS = ClaimStatus
VS = VerificationStatus


@pytest.fixture
def insurer_service(db_session, notifier, audit, clock) -> InsurerDecisionService:
    return InsurerDecisionService(db_session, notifier=notifier, audit=audit, clock=clock)


@pytest.fixture
def forwarded_claim(make_claim):
    """Claim the admin forwarded to the insurer."""

    async def _make(**overrides):
        overrides.setdefault("verification_status", VS.AI_SATELLITE_PROCESSED)
        return await make_claim(**overrides)

    return _make


class TestUpdateStatus:
    async def test_approve(self, insurer_service, insurer_actor, forwarded_claim, notifier, farmer, audit):
        claim = await forwarded_claim()

        result = await insurer_service.update_status(insurer_actor, claim.id, CS.APPROVED, notes="Field visit done")

        assert result.status == CS.APPROVED
        assert result.notes[0]["kind"] == "insurer_decision"
        assert [n.title for n in notifier.for_user(farmer.id)] == ["Claim Approved"]
        assert audit.entries[0].before["status"] == "pending"
        assert audit.entries[0].after["status"] == "approved"

    async def test_rejection_of_damaged_claim_needs_detailed_reason(
        self, insurer_service, insurer_actor, forwarded_claim, reload_claim
    ):
        claim = await forwarded_claim(ai_damage_percent=45.0)

        with pytest.raises(RejectionReasonRequiredError):
            await insurer_service.update_status(insurer_actor, claim.id, CS.REJECTED, notes="no")

        assert (await reload_claim(claim.id)).status == CS.PENDING

    async def test_rejection_with_detailed_reason(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim(ai_damage_percent=45.0)

        result = await insurer_service.update_status(
            insurer_actor, claim.id, CS.REJECTED, notes="Crop was harvested before the storm"
        )

        assert result.status == CS.REJECTED
        assert result.verification_status == VS.AI_SATELLITE_PROCESSED
        assert result.fraud_flagged_at is None

    async def test_low_damage_rejection_needs_no_reason(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim(ai_damage_percent=20.0)

        result = await insurer_service.update_status(insurer_actor, claim.id, CS.REJECTED)

        assert result.status == CS.REJECTED

    async def test_rejecting_heavy_damage_flags_fraud_suspect(
        self, insurer_service, insurer_actor, forwarded_claim
    ):
        claim = await forwarded_claim(ai_damage_percent=80.0)

        result = await insurer_service.update_status(
            insurer_actor, claim.id, CS.REJECTED, notes="Photos do not match the insured plot"
        )

        assert result.status == CS.REJECTED
        assert result.verification_status == VS.FRAUD_SUSPECT
        assert result.fraud_flagged_at is not None

    async def test_resolved_only_through_payout(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim(status=CS.APPROVED)

        with pytest.raises(InvalidTransitionError):
            await insurer_service.update_status(insurer_actor, claim.id, CS.RESOLVED)

    async def test_illegal_transition(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim(status=CS.REJECTED)

        with pytest.raises(InvalidTransitionError):
            await insurer_service.update_status(insurer_actor, claim.id, CS.APPROVED)

    async def test_claim_of_other_insurer_is_invisible(
        self, insurer_service, insurer_actor, forwarded_claim, other_insurer
    ):
        claim = await forwarded_claim(assigned_to_id=other_insurer.id)

        with pytest.raises(ClaimNotFoundError):
            await insurer_service.update_status(insurer_actor, claim.id, CS.APPROVED)

    async def test_farmer_cannot_decide(self, insurer_service, farmer_actor, forwarded_claim):
        claim = await forwarded_claim()

        with pytest.raises(AuthorizationError):
            await insurer_service.update_status(farmer_actor, claim.id, CS.APPROVED)


class TestVerificationReport:
    async def test_save_draft_moves_claim_under_review(
        self, insurer_service, insurer_actor, forwarded_claim, audit
    ):
        claim = await forwarded_claim()
        report = VerificationReportRequest(verification_notes="Visited north plot", estimated_loss=12000)

        result = await insurer_service.save_draft(insurer_actor, claim.id, report)

        assert result.status == CS.UNDER_REVIEW
        assert result.verification_data["verification_notes"] == "Visited north plot"
        assert "last_updated" in result.verification_data
        assert audit.actions() == ["claim.verification_draft_saved"]

    async def test_submit_confirmed_damage_approves(self, insurer_service, insurer_actor, forwarded_claim, audit):
        claim = await forwarded_claim()
        report = VerificationReportRequest(damage_confirmation="partial", estimated_loss=15000)

        result = await insurer_service.submit_report(insurer_actor, claim.id, report)

        assert result.status == CS.APPROVED
        assert result.verification_status == VS.VERIFIED
        assert result.inspection_report["inspector_id"] == str(insurer_actor.actor_id)
        assert audit.entries[0].before == {
            "status": "pending",
            "verification_status": "AI_Satellite_Processed",
        }
        assert audit.entries[0].after == {"status": "approved", "verification_status": "Verified"}

    async def test_submit_denied_damage_rejects_with_friction(
        self, insurer_service, insurer_actor, forwarded_claim
    ):
        claim = await forwarded_claim(ai_damage_percent=50.0)

        with pytest.raises(RejectionReasonRequiredError):
            await insurer_service.submit_report(
                insurer_actor, claim.id, VerificationReportRequest(damage_confirmation="no", verification_notes="ok")
            )

        result = await insurer_service.submit_report(
            insurer_actor,
            claim.id,
            VerificationReportRequest(damage_confirmation="no", verification_notes="Standing crop is healthy"),
        )
        assert result.status == CS.REJECTED
        assert result.verification_status == VS.VERIFIED

    async def test_submit_requires_damage_confirmation(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim()

        with pytest.raises(ValidationError):
            await insurer_service.submit_report(insurer_actor, claim.id, VerificationReportRequest())

    async def test_submit_before_admin_review_is_refused(self, insurer_service, insurer_actor, make_claim):
        claim = await make_claim(verification_status=VS.AI_PROCESSED_ADMIN_REVIEW)

        with pytest.raises(InvalidTransitionError):
            await insurer_service.submit_report(
                insurer_actor, claim.id, VerificationReportRequest(damage_confirmation="yes")
            )

    async def test_manual_review_claim_can_be_verified(self, insurer_service, insurer_actor, make_claim):
        claim = await make_claim(verification_status=VS.MANUAL_REVIEW)

        result = await insurer_service.submit_report(
            insurer_actor, claim.id, VerificationReportRequest(damage_confirmation="confirmed")
        )

        assert result.status == CS.APPROVED


class TestFraudAndCancellation:
    async def test_flag_fraud(self, insurer_service, insurer_actor, forwarded_claim, notifier, farmer, audit):
        claim = await forwarded_claim()

        result = await insurer_service.flag_fraud(insurer_actor, claim.id, reason="Duplicate photos")

        assert result.status == CS.FRAUD_SUSPECT
        assert result.verification_status == VS.FRAUD_SUSPECT
        assert result.notes[0]["kind"] == "fraud_flag"
        farmer_note = notifier.for_user(farmer.id)[0]
        assert "pending verification" in farmer_note.message
        assert audit.entries[0].before["status"] == "pending"
        assert audit.entries[0].after["status"] == "fraud_suspect"

    async def test_cancel_soft_deletes(self, insurer_service, insurer_actor, forwarded_claim, audit):
        claim = await forwarded_claim()

        result = await insurer_service.cancel_claim(insurer_actor, claim.id, reason="Filed twice")

        assert result.status == CS.CANCELLED
        assert result.deleted_at is not None
        assert audit.actions() == ["claim.cancelled"]
        assert audit.entries[0].before == {"status": "pending"}

    async def test_cancelled_claim_is_gone(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim()
        await insurer_service.cancel_claim(insurer_actor, claim.id)

        with pytest.raises(ClaimNotFoundError):
            await insurer_service.update_status(insurer_actor, claim.id, CS.APPROVED)


class TestPayout:
    async def test_payout_up_to_sum_insured(self, insurer_service, insurer_actor, forwarded_claim, notifier, farmer):
        claim = await forwarded_claim(status=CS.APPROVED)

        result = await insurer_service.process_payout(
            insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1001", amount=50000.00)
        )

        assert result.status == CS.RESOLVED
        assert result.payout_status == "paid"
        assert result.payout_amount == 50000.0
        assert result.payout_transaction_id == "TXN-1001"
        assert result.resolution_details == "Payout Processed. Txn: TXN-1001. Notes: None"
        assert notifier.for_user(farmer.id)[0].severity == "success"

    async def test_payout_above_sum_insured_is_refused_without_mutation(
        self, insurer_service, insurer_actor, forwarded_claim, reload_claim
    ):
        claim = await forwarded_claim(status=CS.APPROVED)

        with pytest.raises(PayoutExceedsSumInsuredError):
            await insurer_service.process_payout(
                insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1002", amount=50000.01)
            )

        reloaded = await reload_claim(claim.id)
        assert reloaded.status == CS.APPROVED
        assert reloaded.payout_status is None
        assert reloaded.payout_amount is None

    async def test_payout_requires_approved_claim(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim()

        with pytest.raises(PayoutError):
            await insurer_service.process_payout(
                insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1003", amount=100)
            )

    async def test_payout_is_written_once(self, insurer_service, insurer_actor, forwarded_claim):
        claim = await forwarded_claim(status=CS.APPROVED)
        await insurer_service.process_payout(
            insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1004", amount=1000)
        )

        with pytest.raises(PayoutError):
            await insurer_service.process_payout(
                insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1005", amount=1000)
            )

    async def test_payout_uses_chosen_policy_sum_insured(
        self, insurer_service, insurer_actor, forwarded_claim, make_policy
    ):
        small = await make_policy(policy_number="POL-SMALL", sum_insured=Decimal("5000.00"))
        claim = await forwarded_claim(status=CS.APPROVED, chosen_policy_id=small.id)

        with pytest.raises(PayoutExceedsSumInsuredError):
            await insurer_service.process_payout(
                insurer_actor, claim.id, PayoutRequest(transaction_id="TXN-1006", amount=6000)
            )

    async def test_insurer_without_link_is_refused(self, insurer_service, insurer_user, forwarded_claim):
        claim = await forwarded_claim(status=CS.APPROVED)
        unlinked = ActorContext(actor_id=insurer_user.id, role=Role.INSURER)

        with pytest.raises(AuthorizationError):
            await insurer_service.process_payout(
                unlinked, claim.id, PayoutRequest(transaction_id="TXN-1007", amount=10)
            )
