"""Unit tests for the claim state machine tables."""

import pytest

from cropclaim.core.exceptions import InvalidTransitionError
from cropclaim.database.enums import ClaimStatus, VerificationStatus
from cropclaim.services.verification import (
    TERMINAL_STATUSES,
    can_transition_status,
    can_transition_verification,
    ensure_status_transition,
    ensure_verification_transition,
)

CS = ClaimStatus
VS = VerificationStatus


class TestVerificationTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (VS.PENDING, VS.AI_PROCESSED_ADMIN_REVIEW),
            (VS.AI_PROCESSED_ADMIN_REVIEW, VS.AI_SATELLITE_PROCESSED),
            (VS.AI_PROCESSED_ADMIN_REVIEW, VS.MANUAL_REVIEW),
            (VS.AI_SATELLITE_PROCESSED, VS.VERIFIED),
            (VS.MANUAL_REVIEW, VS.VERIFIED),
            (VS.VERIFIED, VS.FRAUD_SUSPECT),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition_verification(current, target)
        ensure_verification_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (VS.PENDING, VS.AI_SATELLITE_PROCESSED),
            (VS.PENDING, VS.VERIFIED),
            (VS.AI_SATELLITE_PROCESSED, VS.MANUAL_REVIEW),
            (VS.VERIFIED, VS.PENDING),
            (VS.FRAUD_SUSPECT, VS.VERIFIED),
        ],
    )
    def test_refused(self, current, target):
        assert not can_transition_verification(current, target)
        with pytest.raises(InvalidTransitionError):
            ensure_verification_transition(current, target)

    def test_admin_gate_sources(self):
        assert [s for s in VS if can_transition_verification(s, VS.AI_SATELLITE_PROCESSED)] == [
            VS.AI_PROCESSED_ADMIN_REVIEW
        ]
        assert {s for s in VS if can_transition_verification(s, VS.VERIFIED)} == {
            VS.AI_SATELLITE_PROCESSED,
            VS.MANUAL_REVIEW,
        }

    def test_accepts_raw_values(self):
        assert can_transition_verification("Pending", "AI_Processed_Admin_Review")


class TestStatusTransitions:
    def test_resolved_only_from_approved(self):
        assert [s for s in CS if can_transition_status(s, CS.RESOLVED)] == [CS.APPROVED]

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {CS.RESOLVED, CS.CANCELLED}

    @pytest.mark.parametrize("target", [CS.APPROVED, CS.REJECTED, CS.UNDER_REVIEW, CS.CANCELLED])
    def test_resolved_is_final(self, target):
        assert not can_transition_status(CS.RESOLVED, target)

    def test_rejected_can_only_escalate(self):
        assert can_transition_status(CS.REJECTED, CS.FRAUD_SUSPECT)
        with pytest.raises(InvalidTransitionError):
            ensure_status_transition(CS.REJECTED, CS.APPROVED)

    def test_under_review_can_be_saved_again(self):
        assert can_transition_status(CS.UNDER_REVIEW, CS.UNDER_REVIEW)
