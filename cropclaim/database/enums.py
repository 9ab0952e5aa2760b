"""Enumerations persisted on the pipeline tables."""

from enum import Enum


class ClaimStatus(str, Enum):
    """Business-facing claim lifecycle."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    FRAUD_SUSPECT = "fraud_suspect"


class VerificationStatus(str, Enum):
    """AI/admin verification lifecycle."""

    PENDING = "Pending"
    AI_PROCESSED_ADMIN_REVIEW = "AI_Processed_Admin_Review"
    AI_SATELLITE_PROCESSED = "AI_Satellite_Processed"
    MANUAL_REVIEW = "Manual_Review"
    VERIFIED = "Verified"
    FRAUD_SUSPECT = "fraud_suspect"


class AiTaskType(str, Enum):
    OCR = "ocr"
    SATELLITE = "satellite"
    FRAUD_DETECTION = "fraud_detection"


class AiTaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PolicyStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"


class DocumentKind(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"


class PayoutStatus(str, Enum):
    PAID = "paid"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
