"""Asynchronous AI verification task queue.

Each claim gets up to three independent tasks (ocr, satellite,
fraud_detection). A task runs on its own dispatch path:

    pending --dispatch--> processing --success--> completed
    processing --failure--> pending (retry scheduled) | failed (dead-letter)

An attempt that fails while recording its result, or that is still
processing after the processing timeout, counts as a failure too.

Retries use a fixed delay table indexed by the new retry count. After
every successful completion the aggregation barrier checks, in a single
conditional UPDATE, whether all of the claim's tasks are done and moves
the claim to admin review.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.config import settings
from cropclaim.core.exceptions import (
    AiHandlerError,
    AiTaskEnqueueError,
    AiTaskNotFoundError,
    AiTaskStateError,
)
from cropclaim.database.enums import AiTaskType, ClaimStatus
from cropclaim.database.models import AiTask
from cropclaim.repositories.ai_task_repository import AiTaskRepository
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.repositories.user_repository import UserRepository
from cropclaim.services.ai.handlers import AiHandlerRegistry, default_handler_registry
from cropclaim.services.ai.models import AiTaskOutput
from cropclaim.services.collaborators import LoggingNotificationSink, NotificationSink
from cropclaim.services.notifications import safe_notify
from cropclaim.temporal.scheduler import TaskScheduler
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

ADMIN_REVIEW_TITLE = "New Claim Ready for Review"


@dataclass(frozen=True)
class EnqueueResult:
    """Outcome of a non-raising enqueue call."""

    task_type: AiTaskType
    task_id: Optional[UUID] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AiTaskQueue:
    """Durable, retryable execution of AI verification tasks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: TaskScheduler,
        handlers: Optional[AiHandlerRegistry] = None,
        notifier: Optional[NotificationSink] = None,
        clock: Clock = system_clock,
        max_retries: Optional[int] = None,
        retry_delays: Optional[Sequence[float]] = None,
    ):
        """Initialize the queue.

        Args:
            session_factory: Factory for short-lived sessions; every state
                change runs in its own transaction
            scheduler: Dispatch mechanism for attempts and retries
            handlers: AI handler per task type
            notifier: Notification sink for admin alerts
            clock: Time source
            max_retries: Retry budget per task, defaults to AI_TASK_MAX_RETRIES
            retry_delays: Delay table in seconds, defaults to AI_TASK_RETRY_DELAYS
        """
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.handlers = handlers or default_handler_registry()
        self.notifier = notifier or LoggingNotificationSink()
        self.clock = clock
        self.max_retries = max_retries if max_retries is not None else settings.pipeline.ai_task_max_retries
        self.retry_delays = list(retry_delays or settings.pipeline.ai_task_retry_delays)
        self.scheduler.bind(self.process_task)

    def retry_delay(self, retry_count: int) -> float:
        """Delay before the attempt that follows the given (new) retry count."""
        index = min(max(retry_count, 1), len(self.retry_delays)) - 1
        return float(self.retry_delays[index])

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(self, claim_id: UUID, task_type: AiTaskType, input_data: Dict[str, Any]) -> UUID:
        """Record a pending task and dispatch it.

        The claim must already be committed.

        Returns:
            Id of the new task

        Raises:
            AiTaskEnqueueError: The task could not be recorded or dispatched
        """
        task_type = AiTaskType(task_type)
        try:
            async with self.session_factory() as session:
                task = await AiTaskRepository(session).create_task(
                    claim_id=claim_id,
                    task_type=task_type,
                    input_data=input_data,
                    max_retries=self.max_retries,
                    now=self.clock.now(),
                )
                task_id = task.id
                await session.commit()
        except Exception as e:
            raise AiTaskEnqueueError(
                f"Failed to record {task_type.value} task for claim {claim_id}: {e}",
                original_error=e,
            ) from e

        LOGGER.info(
            f"Enqueued {task_type.value} task {task_id} for claim {claim_id}",
            extra={"task_id": str(task_id), "claim_id": str(claim_id), "task_type": task_type.value},
        )

        try:
            await self.scheduler.schedule(task_id, 0.0)
        except Exception as e:
            raise AiTaskEnqueueError(
                f"Task {task_id} recorded but dispatch failed: {e}",
                original_error=e,
            ) from e
        return task_id

    async def try_enqueue(
        self, claim_id: UUID, task_type: AiTaskType, input_data: Dict[str, Any]
    ) -> EnqueueResult:
        """Enqueue without raising; the caller decides what to log."""
        try:
            task_id = await self.enqueue(claim_id, task_type, input_data)
            return EnqueueResult(task_type=AiTaskType(task_type), task_id=task_id)
        except AiTaskEnqueueError as e:
            return EnqueueResult(task_type=AiTaskType(task_type), error=e.message)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_task(self, task_id: UUID) -> None:
        """Run one attempt of a task.

        A dispatch for a task that is not pending (already running,
        finished or dead) is ignored, so attempts of one task never overlap.
        """
        async with self.session_factory() as session:
            repo = AiTaskRepository(session)
            claimed = await repo.start_attempt(task_id, self.clock.now())
            if not claimed:
                await session.rollback()
                LOGGER.info(
                    f"AI task {task_id} is not pending, skipping dispatch",
                    extra={"task_id": str(task_id)},
                )
                return
            await session.commit()
            task = await repo.get_fresh(task_id)
            claim_id = task.claim_id
            task_type = AiTaskType(task.task_type)
            input_data = dict(task.input_data or {})
            retry_count = task.retry_count
            max_retries = task.max_retries

        try:
            output = await self._run_handler(task_type, input_data)
        except Exception as e:
            await self._handle_failure(task_id, task_type, retry_count, max_retries, e)
            return

        try:
            await self._complete(task_id, claim_id, task_type, output)
        except Exception as e:
            LOGGER.error(f"Recording the result of AI task {task_id} failed", exc_info=True)
            await self._handle_failure(task_id, task_type, retry_count, max_retries, e)
            return

        try:
            await self._check_aggregation(claim_id)
        except Exception:
            # The task is already completed; the recovery sweep re-runs the barrier.
            LOGGER.error(f"Aggregation check for claim {claim_id} failed", exc_info=True)

    async def _run_handler(self, task_type: AiTaskType, input_data: Dict[str, Any]) -> AiTaskOutput:
        handler = self.handlers.get(task_type)
        result = await handler.analyze(input_data)
        output = result if isinstance(result, AiTaskOutput) else AiTaskOutput.model_validate(result)
        if output.error:
            raise AiHandlerError(output.error)
        return output

    async def _complete(
        self,
        task_id: UUID,
        claim_id: UUID,
        task_type: AiTaskType,
        output: AiTaskOutput,
    ) -> None:
        """Merge the output onto the claim and mark the task completed."""
        now = self.clock.now()
        async with self.session_factory() as session:
            claims = ClaimRepository(session)
            claim = await claims.get_by_id(claim_id, for_update=True)
            if claim is None:
                await session.rollback()
                LOGGER.warning(f"Claim {claim_id} for AI task {task_id} no longer exists")
                return

            values: Dict[str, Any] = {"updated_at": now}
            if output.damage_percent is not None:
                values["ai_damage_percent"] = output.damage_percent
            if output.recommended_amount is not None:
                values["ai_recommended_amount"] = output.recommended_amount

            report = dict(claim.ai_report or {})
            report[task_type.value] = output.report
            values["ai_report"] = report

            if output.validation_flags is not None:
                flags = dict(claim.ai_validation_flags or {})
                flags[task_type.value] = output.validation_flags
                values["ai_validation_flags"] = flags

            await claims.update_fields(claim_id, values)
            completed = await AiTaskRepository(session).complete(
                task_id, output.model_dump(mode="json"), now
            )
            if not completed:
                await session.rollback()
                LOGGER.warning(f"AI task {task_id} left processing before completion was recorded")
                return
            await session.commit()

        LOGGER.info(
            f"AI task {task_id} ({task_type.value}) completed for claim {claim_id}",
            extra={"task_id": str(task_id), "claim_id": str(claim_id)},
        )

    async def _handle_failure(
        self,
        task_id: UUID,
        task_type: AiTaskType,
        retry_count: int,
        max_retries: int,
        error: Exception,
    ) -> None:
        """Schedule the next retry or dead-letter the task."""
        now = self.clock.now()
        message = str(error) or error.__class__.__name__

        if retry_count < max_retries:
            new_retry_count = retry_count + 1
            delay = self.retry_delay(new_retry_count)
            async with self.session_factory() as session:
                rescheduled = await AiTaskRepository(session).schedule_retry(
                    task_id,
                    retry_count=new_retry_count,
                    error_message=message,
                    next_attempt_at=now + timedelta(seconds=delay),
                    now=now,
                )
                await session.commit()
            if not rescheduled:
                LOGGER.warning(f"AI task {task_id} left processing before retry was recorded")
                return

            LOGGER.warning(
                f"AI task {task_id} ({task_type.value}) failed, retry {new_retry_count}/{max_retries} "
                f"in {delay}s: {message}",
                extra={"task_id": str(task_id), "retry_count": new_retry_count},
            )
            try:
                await self.scheduler.schedule(task_id, delay)
            except Exception:
                # The task stays pending with next_attempt_at set; the
                # stale-task recovery job re-dispatches it.
                LOGGER.error(f"Could not schedule retry for AI task {task_id}", exc_info=True)
            return

        async with self.session_factory() as session:
            await AiTaskRepository(session).dead_letter(
                task_id, f"Max retries reached: {message}", now
            )
            await session.commit()
        LOGGER.error(
            f"AI task {task_id} ({task_type.value}) failed after {retry_count} retries",
            extra={"task_id": str(task_id), "retry_count": retry_count, "error": message},
        )

    async def _check_aggregation(self, claim_id: UUID) -> bool:
        """Advance the claim to admin review once every task has completed."""
        now = self.clock.now()
        async with self.session_factory() as session:
            claims = ClaimRepository(session)
            advanced = await claims.advance_to_admin_review(claim_id, now)
            await session.commit()
            if not advanced:
                return False

            claim = await claims.get_with_relations(claim_id)
            admin_ids = await UserRepository(session).list_active_admin_ids()

        LOGGER.info(
            f"All AI tasks completed for claim {claim_id}, verification status updated to "
            f"AI_Processed_Admin_Review",
            extra={"claim_id": str(claim_id)},
        )

        if claim is None or claim.status == ClaimStatus.CANCELLED or claim.deleted_at is not None:
            LOGGER.info(f"Claim {claim_id} is cancelled, admin notification skipped")
            return True

        for admin_id in admin_ids:
            await safe_notify(
                self.notifier,
                admin_id,
                ADMIN_REVIEW_TITLE,
                f"AI processing for Claim #{claim.claim_id} is complete. It is now pending your review.",
                "info",
            )
        return True

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    async def get_task(self, task_id: UUID) -> AiTask:
        async with self.session_factory() as session:
            task = await AiTaskRepository(session).get_fresh(task_id)
        if task is None:
            raise AiTaskNotFoundError(f"AI task {task_id} not found")
        return task

    async def get_tasks_for_claim(self, claim_id: UUID) -> List[AiTask]:
        async with self.session_factory() as session:
            return await AiTaskRepository(session).list_for_claim(claim_id)

    async def get_failed_tasks(self, limit: int = 100) -> List[AiTask]:
        """List dead-lettered tasks, newest first."""
        async with self.session_factory() as session:
            return await AiTaskRepository(session).list_failed(limit)

    async def retry_task(self, task_id: UUID) -> AiTask:
        """Reset a dead-lettered task to pending with a fresh retry budget.

        Raises:
            AiTaskNotFoundError: No such task
            AiTaskStateError: The task is not in failed state
        """
        async with self.session_factory() as session:
            repo = AiTaskRepository(session)
            task = await repo.get_fresh(task_id)
            if task is None:
                raise AiTaskNotFoundError(f"AI task {task_id} not found")
            current_status = task.status
            reset = await repo.reset_failed(task_id, self.clock.now())
            if not reset:
                await session.rollback()
                raise AiTaskStateError(
                    f"AI task {task_id} is not in failed state (status: {current_status.value})"
                )
            await session.commit()
            task = await repo.get_fresh(task_id)

        LOGGER.info(f"Manual retry requested for AI task {task_id}", extra={"task_id": str(task_id)})
        await self.scheduler.schedule(task_id, 0.0)
        return task

    async def recover_stale_pending(
        self,
        stale_after_minutes: Optional[int] = None,
        processing_timeout_seconds: Optional[int] = None,
    ) -> int:
        """Recover tasks whose attempt was lost.

        Pending tasks whose scheduled attempt never ran are re-dispatched.
        Processing tasks whose attempt started longer ago than the processing
        timeout count as a failed attempt and go through the retry ladder.
        Claims whose tasks all completed without passing the aggregation
        barrier are checked again. Dead-lettered tasks are not touched.

        Returns:
            Number of tasks re-dispatched or retried
        """
        minutes = (
            stale_after_minutes
            if stale_after_minutes is not None
            else settings.pipeline.ai_task_stale_pending_minutes
        )
        timeout = (
            processing_timeout_seconds
            if processing_timeout_seconds is not None
            else settings.pipeline.ai_task_processing_timeout_seconds
        )
        now = self.clock.now()
        async with self.session_factory() as session:
            repo = AiTaskRepository(session)
            stale = await repo.list_overdue_pending(now - timedelta(minutes=minutes))
            task_ids = []
            for task in stale:
                if await repo.touch_pending(task.id, now, now):
                    task_ids.append(task.id)
            stuck = [
                (task.id, AiTaskType(task.task_type), task.retry_count, task.max_retries)
                for task in await repo.list_stuck_processing(now - timedelta(seconds=timeout))
            ]
            await session.commit()
            unaggregated = await ClaimRepository(session).list_awaiting_aggregation()

        for task_id in task_ids:
            try:
                await self.scheduler.schedule(task_id, 0.0)
            except Exception:
                LOGGER.error(f"Could not re-dispatch stale AI task {task_id}", exc_info=True)

        for task_id, task_type, retry_count, max_retries in stuck:
            await self._handle_failure(
                task_id,
                task_type,
                retry_count,
                max_retries,
                AiHandlerError(f"Attempt did not finish within {timeout}s"),
            )

        for claim_id in unaggregated:
            await self._check_aggregation(claim_id)

        if task_ids:
            LOGGER.warning(f"Re-dispatched {len(task_ids)} stale pending AI tasks")
        if stuck:
            LOGGER.warning(f"Recovered {len(stuck)} AI tasks stuck in processing")
        return len(task_ids) + len(stuck)


def build_task_queue(
    scheduler: Optional[TaskScheduler] = None,
    notifier: Optional[NotificationSink] = None,
    clock: Clock = system_clock,
) -> AiTaskQueue:
    """Queue over the application session factory and the configured scheduler."""
    from cropclaim.core.database import async_session_maker
    from cropclaim.temporal.scheduler import build_scheduler

    return AiTaskQueue(
        async_session_maker,
        scheduler or build_scheduler(clock),
        notifier=notifier,
        clock=clock,
    )
