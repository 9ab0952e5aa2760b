"""Request and response models for the admin review gate and insurer decisions."""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from cropclaim.database.enums import ClaimStatus


class AdminOverride(BaseModel):
    """AI fields an admin may correct before forwarding a report."""

    damage_percent: Optional[float] = Field(default=None, ge=0, le=100)
    recommended_amount: Optional[float] = Field(default=None, ge=0)
    validation_flags: Optional[Dict[str, Any]] = None

    def is_empty(self) -> bool:
        return self.damage_percent is None and self.recommended_amount is None and self.validation_flags is None


class AdminForwardRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=5000)
    overrides: Optional[AdminOverride] = None


class AdminRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=5000)
    notes: Optional[str] = Field(default=None, max_length=5000)


class ReviewStats(BaseModel):
    pending_reviews: int
    forwarded_today: int
    rejected_today: int
    total_processed: int


class ClaimStatusUpdateRequest(BaseModel):
    status: ClaimStatus
    notes: Optional[str] = Field(default=None, max_length=5000)


DamageConfirmation = Literal["yes", "partial", "confirmed", "no", "rejected"]


class VerificationReportRequest(BaseModel):
    """Insurer field verification, saved as a draft or submitted."""

    damage_confirmation: Optional[DamageConfirmation] = None
    verification_notes: Optional[str] = Field(default=None, max_length=5000)
    estimated_loss: Optional[float] = Field(default=None, ge=0)
    recommendations: Optional[str] = Field(default=None, max_length=5000)


class FraudFlagRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=5000)


class PayoutRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., gt=0)
    notes: Optional[str] = Field(default=None, max_length=5000)


class CancelClaimRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=5000)
