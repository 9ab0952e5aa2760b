"""Request and response models for claims."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cropclaim.core.clock import ensure_utc
from cropclaim.database.enums import ClaimStatus, DocumentKind, VerificationStatus


class ClaimCreateRequest(BaseModel):
    """Claim submission payload."""

    policy: str = Field(
        ...,
        min_length=1,
        description="Policy id or human-readable policy number",
        examples=["POL-2026-0001"],
    )
    chosen_policy_id: Optional[str] = Field(
        default=None,
        description="Explicit pick when several active policies cover the incident",
    )
    description: str = Field(..., min_length=1, max_length=5000)
    location_of_incident: Optional[str] = Field(default=None, max_length=500)
    date_of_incident: date
    amount_claimed: Optional[float] = Field(default=None, ge=0)
    documents: List[str] = Field(default_factory=list, description="Uploaded document paths")
    images: List[str] = Field(default_factory=list, description="Uploaded image paths")

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description must not be blank")
        return value.strip()

    @field_validator("location_of_incident")
    @classmethod
    def empty_location_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy used for the idempotency fingerprint."""
        return self.model_dump(mode="json")


class InsurerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: Optional[str] = None


class ClaimDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    path: str
    kind: DocumentKind
    file_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class ClaimResponse(BaseModel):
    """Full claim projection returned by intake and queries."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_id: str
    farmer_id: UUID
    policy_id: UUID
    chosen_policy_id: UUID
    assigned_to_id: UUID
    assigned_to: Optional[InsurerSummary] = None

    description: str
    location_of_incident: Optional[str] = None
    date_of_incident: date
    date_of_claim: Optional[datetime] = None
    amount_claimed: Optional[float] = None

    status: ClaimStatus
    verification_status: VerificationStatus

    ai_damage_percent: Optional[float] = None
    ai_recommended_amount: Optional[float] = None
    ai_validation_flags: Optional[Dict[str, Any]] = None
    ai_report: Optional[Dict[str, Any]] = None
    ai_processed_at: Optional[datetime] = None

    admin_override_at: Optional[datetime] = None
    admin_override_reason: Optional[str] = None
    notes: Optional[List[Dict[str, Any]]] = None

    verification_data: Optional[Dict[str, Any]] = None
    inspection_report: Optional[Dict[str, Any]] = None
    fraud_flagged_at: Optional[datetime] = None

    payout_status: Optional[str] = None
    payout_transaction_id: Optional[str] = None
    payout_amount: Optional[float] = None
    payout_date: Optional[datetime] = None
    resolution_details: Optional[str] = None
    resolution_date: Optional[datetime] = None

    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    documents: List[ClaimDocumentResponse] = Field(default_factory=list)
    images: List[ClaimDocumentResponse] = Field(default_factory=list)

    @field_validator(
        "date_of_claim",
        "ai_processed_at",
        "admin_override_at",
        "fraud_flagged_at",
        "payout_date",
        "resolution_date",
        "deleted_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @classmethod
    def from_claim(cls, claim: Any) -> "ClaimResponse":
        """Build the projection, splitting attachments by kind.

        The claim must have ``documents`` and ``assigned_to`` loaded.
        """
        attachments = [ClaimDocumentResponse.model_validate(d) for d in claim.documents]
        data = {
            name: getattr(claim, name)
            for name in cls.model_fields
            if name not in ("documents", "images", "assigned_to")
        }
        data["assigned_to"] = (
            InsurerSummary.model_validate(claim.assigned_to) if claim.assigned_to else None
        )
        data["documents"] = [d for d in attachments if d.kind == DocumentKind.DOCUMENT]
        data["images"] = [d for d in attachments if d.kind == DocumentKind.IMAGE]
        return cls.model_validate(data)


class ClaimListResponse(BaseModel):
    claims: List[ClaimResponse]
    total: int
    skip: int
    limit: int
