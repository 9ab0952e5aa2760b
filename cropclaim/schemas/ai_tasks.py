"""Response models for AI task operations."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from cropclaim.core.clock import ensure_utc
from cropclaim.database.enums import AiTaskStatus, AiTaskType


class AiTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_id: UUID
    task_type: AiTaskType
    status: AiTaskStatus
    retry_count: int
    max_retries: int
    error_message: Optional[str] = None
    output_data: Optional[Dict[str, Any]] = None
    next_attempt_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("next_attempt_at", "created_at", "updated_at", "processed_at", "completed_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class AiTaskListResponse(BaseModel):
    tasks: List[AiTaskResponse]
    total: int
