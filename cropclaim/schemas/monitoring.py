"""Response models for queue and SLO monitoring."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class QueueDepth(BaseModel):
    pending: int
    processing: int
    total: int
    threshold: int
    alert: bool


class SloReport(BaseModel):
    """Share of AI tasks in the window that completed within the target duration."""

    window_minutes: int
    max_duration_minutes: int
    target_percent: float
    total_completed: int
    within_target: int
    percent_within_target: float
    meets_target: bool


class AiPerformanceMetrics(BaseModel):
    period_hours: int
    total: int
    completed: int
    failed: int
    pending: int
    success_rate: float
    average_processing_seconds: Optional[float] = None


class StuckClaim(BaseModel):
    id: UUID
    claim_id: str
    created_at: datetime
    total_tasks: int
    completed_tasks: int


class MonitoringReport(BaseModel):
    queue: QueueDepth
    slo: SloReport
    performance: AiPerformanceMetrics
    stuck_claims: List[StuckClaim]
