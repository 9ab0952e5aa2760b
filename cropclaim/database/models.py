"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cropclaim.core.database import Base
from cropclaim.database.enums import (
    AiTaskStatus,
    AiTaskType,
    ClaimStatus,
    DocumentKind,
    IdempotencyStatus,
    PolicyStatus,
    UserStatus,
    VerificationStatus,
)

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[PyEnum], length: int = 32) -> Enum:
    """Store enum values (not member names) as plain strings."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class User(Base):
    """Platform user (farmer, insurer staff or admin) as known to the pipeline."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)  # FARMER | INSURER | ADMIN | SUPER_ADMIN
    status: Mapped[UserStatus] = mapped_column(
        _enum(UserStatus), nullable=False, default=UserStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    policies: Mapped[list["Policy"]] = relationship("Policy", back_populates="farmer")


class Insurer(Base):
    """Service provider that issues policies and receives claims."""

    __tablename__ = "insurers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    policies: Mapped[list["Policy"]] = relationship("Policy", back_populates="service_provider")


class Policy(Base):
    """Contract between a farmer and an insurer for a coverage period."""

    __tablename__ = "policies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    policy_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    farmer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    service_provider_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("insurers.id"), nullable=True
    )
    status: Mapped[PolicyStatus] = mapped_column(
        _enum(PolicyStatus), nullable=False, default=PolicyStatus.ACTIVE
    )
    crop_type: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    sum_insured: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    policy_images: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    farmer: Mapped["User"] = relationship("User", back_populates="policies")
    service_provider: Mapped["Insurer | None"] = relationship("Insurer", back_populates="policies")


class Claim(Base):
    """A farmer's compensation request tracked through verification and settlement."""

    __tablename__ = "claims"
    __table_args__ = (
        Index("ix_claims_verification_status", "verification_status"),
        Index("ix_claims_assigned_to_status", "assigned_to_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    claim_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    farmer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("policies.id"), nullable=False)
    chosen_policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("policies.id"), nullable=False
    )
    assigned_to_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("insurers.id"), nullable=False
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_of_incident: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_incident: Mapped[date] = mapped_column(Date, nullable=False)
    date_of_claim: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    amount_claimed: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    status: Mapped[ClaimStatus] = mapped_column(
        _enum(ClaimStatus), nullable=False, default=ClaimStatus.PENDING
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        _enum(VerificationStatus), nullable=False, default=VerificationStatus.PENDING
    )

    # AI output, written by task aggregation or admin override
    ai_damage_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_recommended_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    ai_validation_flags: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ai_report: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ai_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Admin review gate
    admin_override_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Insurer decision engine
    verification_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    inspection_report: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    fraud_flagged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Settlement, written once
    payout_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payout_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    payout_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    payout_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    farmer: Mapped["User"] = relationship("User", foreign_keys=[farmer_id])
    policy: Mapped["Policy"] = relationship("Policy", foreign_keys=[policy_id])
    assigned_to: Mapped["Insurer"] = relationship("Insurer", foreign_keys=[assigned_to_id])
    documents: Mapped[list["ClaimDocument"]] = relationship(
        "ClaimDocument", back_populates="claim", cascade="all, delete-orphan"
    )
    ai_tasks: Mapped[list["AiTask"]] = relationship(
        "AiTask", back_populates="claim", cascade="all, delete-orphan"
    )


class ClaimDocument(Base):
    """Reference to an uploaded document or image attached to a claim."""

    __tablename__ = "claim_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    claim_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True
    )
    path: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[DocumentKind] = mapped_column(_enum(DocumentKind, 16), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    claim: Mapped["Claim"] = relationship("Claim", back_populates="documents")


class AiTask(Base):
    """One asynchronous verification job belonging to a claim."""

    __tablename__ = "ai_tasks"
    __table_args__ = (
        Index("ix_ai_tasks_claim_status", "claim_id", "status"),
        Index("ix_ai_tasks_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    claim_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("claims.id", ondelete="CASCADE"), nullable=False
    )
    task_type: Mapped[AiTaskType] = mapped_column(_enum(AiTaskType), nullable=False)
    status: Mapped[AiTaskStatus] = mapped_column(
        _enum(AiTaskStatus), nullable=False, default=AiTaskStatus.PENDING
    )
    input_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    output_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    claim: Mapped["Claim"] = relationship("Claim", back_populates="ai_tasks")


class IdempotencyRecord(Base):
    """Deduplication guard for claim submissions keyed by a client token."""

    __tablename__ = "idempotency_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[IdempotencyStatus] = mapped_column(
        _enum(IdempotencyStatus), nullable=False, default=IdempotencyStatus.PENDING
    )
    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    request_body: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    response_body: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    claim_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
