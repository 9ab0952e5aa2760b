"""Claim state machine.

A claim moves along two linked axes: ``verification_status`` (AI and
admin pipeline) and ``status`` (business lifecycle). The tables below are
the only legal moves. Services check a move here and then write it with
an update conditioned on the status they checked, so a concurrent change
makes the write miss instead of overwriting it.
"""

from typing import Dict, FrozenSet, Union

from cropclaim.core.exceptions import InvalidTransitionError
from cropclaim.database.enums import ClaimStatus, VerificationStatus

VS = VerificationStatus
CS = ClaimStatus

VERIFICATION_TRANSITIONS: Dict[VerificationStatus, FrozenSet[VerificationStatus]] = {
    VS.PENDING: frozenset({VS.AI_PROCESSED_ADMIN_REVIEW, VS.FRAUD_SUSPECT}),
    VS.AI_PROCESSED_ADMIN_REVIEW: frozenset(
        {VS.AI_SATELLITE_PROCESSED, VS.MANUAL_REVIEW, VS.FRAUD_SUSPECT}
    ),
    VS.AI_SATELLITE_PROCESSED: frozenset({VS.VERIFIED, VS.FRAUD_SUSPECT}),
    VS.MANUAL_REVIEW: frozenset({VS.VERIFIED, VS.FRAUD_SUSPECT}),
    VS.VERIFIED: frozenset({VS.FRAUD_SUSPECT}),
    VS.FRAUD_SUSPECT: frozenset(),
}

STATUS_TRANSITIONS: Dict[ClaimStatus, FrozenSet[ClaimStatus]] = {
    CS.PENDING: frozenset(
        {CS.UNDER_REVIEW, CS.APPROVED, CS.REJECTED, CS.CANCELLED, CS.FRAUD_SUSPECT}
    ),
    CS.UNDER_REVIEW: frozenset(
        {CS.UNDER_REVIEW, CS.APPROVED, CS.REJECTED, CS.CANCELLED, CS.FRAUD_SUSPECT}
    ),
    CS.APPROVED: frozenset({CS.RESOLVED, CS.CANCELLED, CS.FRAUD_SUSPECT}),
    CS.REJECTED: frozenset({CS.FRAUD_SUSPECT}),
    CS.FRAUD_SUSPECT: frozenset({CS.REJECTED, CS.CANCELLED}),
    CS.RESOLVED: frozenset(),
    CS.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in STATUS_TRANSITIONS.items() if not targets)


def can_transition_status(current: Union[ClaimStatus, str], target: Union[ClaimStatus, str]) -> bool:
    return ClaimStatus(target) in STATUS_TRANSITIONS[ClaimStatus(current)]


def can_transition_verification(
    current: Union[VerificationStatus, str], target: Union[VerificationStatus, str]
) -> bool:
    return VerificationStatus(target) in VERIFICATION_TRANSITIONS[VerificationStatus(current)]


def ensure_status_transition(current: Union[ClaimStatus, str], target: Union[ClaimStatus, str]) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition_status(current, target):
        raise InvalidTransitionError(
            f"Cannot change claim status from {ClaimStatus(current).value} "
            f"to {ClaimStatus(target).value}"
        )


def ensure_verification_transition(
    current: Union[VerificationStatus, str], target: Union[VerificationStatus, str]
) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition_verification(current, target):
        raise InvalidTransitionError(
            f"Cannot change verification status from {VerificationStatus(current).value} "
            f"to {VerificationStatus(target).value}"
        )
