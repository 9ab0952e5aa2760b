"""Structured AI results.

Each task type produces its own report record; the claim stores them
namespaced by task type so writers never clobber each other.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class OcrReport(BaseModel):
    """Result of text extraction over the claim's uploads."""

    status: Literal["processed"] = "processed"
    images_processed: int = 0
    documents_processed: int = 0
    extracted_text: Dict[str, str] = Field(default_factory=dict)


class SatelliteReport(BaseModel):
    """Result of satellite imagery comparison for the incident location."""

    status: Literal["processed"] = "processed"
    location: Optional[str] = None
    date_of_incident: Optional[str] = None
    policy_images_count: int = 0
    claim_images_count: int = 0
    has_baseline_images: bool = False
    damage_percent: Optional[float] = None


class ImageMatch(BaseModel):
    policy_image_index: int
    claim_image_index: int
    similarity: float


class FraudReport(BaseModel):
    """Result of fraud screening against the policy's baseline images."""

    status: Literal["analyzed"] = "analyzed"
    policy_id: Optional[str] = None
    policy_images_count: int = 0
    claim_images_count: int = 0
    image_matching_performed: bool = False
    match_score: Optional[float] = None
    matched_images: List[ImageMatch] = Field(default_factory=list)


class FraudFlags(BaseModel):
    """Validation flags raised by fraud screening."""

    fraud_risk: Literal["low", "medium", "high"] = "low"
    image_match_score: Optional[float] = None
    location_match: bool = True
    timestamp_validation: bool = True
    reason: Optional[str] = None


class AiTaskOutput(BaseModel):
    """Output contract shared by every AI handler.

    Fields left as ``None`` are not merged onto the claim. A non-empty
    ``error`` marks the attempt as failed.
    """

    damage_percent: Optional[float] = None
    recommended_amount: Optional[float] = None
    validation_flags: Optional[Dict[str, Any]] = None
    report: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
