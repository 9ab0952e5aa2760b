"""Repository for AI verification tasks.

Status changes are conditional updates keyed on the current status so
that a task can only be claimed by one attempt at a time and terminal
rows are never overwritten.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.database.enums import AiTaskStatus, AiTaskType
from cropclaim.database.models import AiTask
from cropclaim.repositories.base_repository import BaseRepository


class AiTaskRepository(BaseRepository[AiTask]):
    """Repository for AiTask records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AiTask)

    async def create_task(
        self,
        claim_id: UUID,
        task_type: AiTaskType,
        input_data: dict[str, Any],
        max_retries: int,
        now: datetime,
    ) -> AiTask:
        return await self.create(
            claim_id=claim_id,
            task_type=task_type,
            status=AiTaskStatus.PENDING,
            input_data=input_data,
            retry_count=0,
            max_retries=max_retries,
            next_attempt_at=now,
            created_at=now,
            updated_at=now,
        )

    async def get_fresh(self, task_id: UUID) -> Optional[AiTask]:
        """Get a task bypassing the identity map."""
        result = await self.session.execute(
            select(AiTask)
            .where(AiTask.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def start_attempt(self, task_id: UUID, now: datetime) -> bool:
        """Claim a pending task for processing.

        Returns:
            True if this caller now owns the attempt
        """
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.PENDING)
            .values(
                status=AiTaskStatus.PROCESSING,
                processed_at=now,
                next_attempt_at=None,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def complete(self, task_id: UUID, output_data: dict[str, Any], now: datetime) -> bool:
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.PROCESSING)
            .values(
                status=AiTaskStatus.COMPLETED,
                output_data=output_data,
                error_message=None,
                completed_at=now,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def schedule_retry(
        self,
        task_id: UUID,
        retry_count: int,
        error_message: str,
        next_attempt_at: datetime,
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.PROCESSING)
            .values(
                status=AiTaskStatus.PENDING,
                retry_count=retry_count,
                error_message=error_message,
                next_attempt_at=next_attempt_at,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def dead_letter(self, task_id: UUID, error_message: str, now: datetime) -> bool:
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.PROCESSING)
            .values(
                status=AiTaskStatus.FAILED,
                error_message=error_message,
                next_attempt_at=None,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def reset_failed(self, task_id: UUID, now: datetime) -> bool:
        """Re-open a dead-lettered task with a fresh retry budget."""
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.FAILED)
            .values(
                status=AiTaskStatus.PENDING,
                retry_count=0,
                error_message=None,
                next_attempt_at=now,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def touch_pending(self, task_id: UUID, next_attempt_at: datetime, now: datetime) -> bool:
        """Push the due time of a still-pending task forward."""
        result = await self.session.execute(
            update(AiTask)
            .where(AiTask.id == task_id, AiTask.status == AiTaskStatus.PENDING)
            .values(next_attempt_at=next_attempt_at, updated_at=now)
        )
        return result.rowcount == 1

    async def list_failed(self, limit: int = 100) -> List[AiTask]:
        result = await self.session.execute(
            select(AiTask)
            .where(AiTask.status == AiTaskStatus.FAILED)
            .order_by(AiTask.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_claim(self, claim_id: UUID) -> List[AiTask]:
        result = await self.session.execute(
            select(AiTask)
            .where(AiTask.claim_id == claim_id)
            .order_by(AiTask.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_overdue_pending(self, due_before: datetime, limit: int = 100) -> List[AiTask]:
        """Pending tasks whose scheduled attempt is older than the cutoff."""
        due_at = func.coalesce(AiTask.next_attempt_at, AiTask.created_at)
        result = await self.session.execute(
            select(AiTask)
            .where(AiTask.status == AiTaskStatus.PENDING, due_at <= due_before)
            .order_by(AiTask.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_stuck_processing(self, started_before: datetime, limit: int = 100) -> List[AiTask]:
        """Processing tasks whose attempt started before the cutoff."""
        started_at = func.coalesce(AiTask.processed_at, AiTask.updated_at)
        result = await self.session.execute(
            select(AiTask)
            .where(AiTask.status == AiTaskStatus.PROCESSING, started_at <= started_before)
            .order_by(AiTask.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(self, statuses: List[AiTaskStatus]) -> int:
        result = await self.session.scalar(
            select(func.count()).select_from(AiTask).where(AiTask.status.in_(statuses))
        )
        return int(result or 0)

    async def list_completed_since(self, since: datetime) -> List[AiTask]:
        result = await self.session.execute(
            select(AiTask).where(
                AiTask.status == AiTaskStatus.COMPLETED,
                AiTask.completed_at >= since,
            )
        )
        return list(result.scalars().all())

    async def list_created_since(self, since: datetime) -> List[AiTask]:
        result = await self.session.execute(select(AiTask).where(AiTask.created_at >= since))
        return list(result.scalars().all())
