"""Notification texts for claim lifecycle events."""

from typing import Optional, Tuple
from uuid import UUID

from cropclaim.database.enums import ClaimStatus
from cropclaim.services.collaborators import NotificationSink
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)


def claim_status_message(
    claim_number: str, status: ClaimStatus, reason: Optional[str] = None
) -> Tuple[str, str, str]:
    """Title, message and severity for a claim status change."""
    status = ClaimStatus(status)
    if status == ClaimStatus.APPROVED:
        return (
            "Claim Approved",
            f"Good news! Your claim #{claim_number} has been approved. "
            f"You should receive the payout details shortly.",
            "success",
        )
    if status == ClaimStatus.REJECTED:
        return (
            "Claim Rejected",
            f"Your claim #{claim_number} was rejected. Reason: {reason or 'Not specified'}",
            "error",
        )
    if status == ClaimStatus.FRAUD_SUSPECT:
        return (
            "Claim Under Verification",
            f"Your claim #{claim_number} is pending verification.",
            "warning",
        )
    if status == ClaimStatus.UNDER_REVIEW:
        return (
            "Claim Under Review",
            f"Your claim #{claim_number} is now being reviewed by the insurer.",
            "info",
        )
    return (
        "Claim Status Update",
        f"Your claim #{claim_number} status has been updated to {status.value}.",
        "info",
    )


async def safe_notify(
    sink: NotificationSink,
    user_id: Optional[UUID],
    title: str,
    message: str,
    severity: str = "info",
) -> None:
    """Deliver a notification; delivery failures are logged, not raised."""
    if user_id is None:
        return
    try:
        await sink.notify(user_id, title, message, severity)
    except Exception:
        LOGGER.error(f"Failed to notify {user_id}: {title}", exc_info=True)


async def notify_claim_status_change(
    sink: NotificationSink,
    farmer_id: UUID,
    claim_number: str,
    status: ClaimStatus,
    reason: Optional[str] = None,
) -> None:
    title, message, severity = claim_status_message(claim_number, status, reason)
    await safe_notify(sink, farmer_id, title, message, severity)
