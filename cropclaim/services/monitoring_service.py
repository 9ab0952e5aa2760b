"""Queue depth, AI processing SLO and stuck-claim monitoring."""

from datetime import timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.clock import Clock, ensure_utc, system_clock
from cropclaim.core.config import PipelineSettings, settings
from cropclaim.database.enums import AiTaskStatus
from cropclaim.repositories.ai_task_repository import AiTaskRepository
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.schemas.monitoring import (
    AiPerformanceMetrics,
    MonitoringReport,
    QueueDepth,
    SloReport,
    StuckClaim,
)
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)


class MonitoringService:
    """Read-only health checks over the AI task queue."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = system_clock,
        rules: Optional[PipelineSettings] = None,
    ):
        self.tasks = AiTaskRepository(session)
        self.claims = ClaimRepository(session)
        self.clock = clock
        self.rules = rules or settings.pipeline

    async def get_queue_depth(self) -> QueueDepth:
        pending = await self.tasks.count_by_status([AiTaskStatus.PENDING])
        processing = await self.tasks.count_by_status([AiTaskStatus.PROCESSING])
        total = pending + processing
        threshold = self.rules.queue_depth_alert_threshold
        return QueueDepth(
            pending=pending,
            processing=processing,
            total=total,
            threshold=threshold,
            alert=total > threshold,
        )

    async def get_slo_report(self) -> SloReport:
        """Share of tasks completed in the window whose processing beat the target duration.

        An empty window meets the target.
        """
        now = self.clock.now()
        window = self.rules.ai_slo_window_minutes
        max_duration = timedelta(minutes=self.rules.ai_slo_max_duration_minutes)
        completed = await self.tasks.list_completed_since(now - timedelta(minutes=window))

        within = 0
        for task in completed:
            started = ensure_utc(task.processed_at or task.created_at)
            if ensure_utc(task.completed_at) - started < max_duration:
                within += 1

        percent = (within / len(completed) * 100) if completed else 100.0
        return SloReport(
            window_minutes=window,
            max_duration_minutes=self.rules.ai_slo_max_duration_minutes,
            target_percent=self.rules.ai_slo_target_percent,
            total_completed=len(completed),
            within_target=within,
            percent_within_target=round(percent, 2),
            meets_target=percent >= self.rules.ai_slo_target_percent,
        )

    async def get_performance_metrics(self, hours: int = 24) -> AiPerformanceMetrics:
        now = self.clock.now()
        tasks = await self.tasks.list_created_since(now - timedelta(hours=hours))

        completed = [t for t in tasks if t.status == AiTaskStatus.COMPLETED]
        failed = sum(1 for t in tasks if t.status == AiTaskStatus.FAILED)
        pending = sum(1 for t in tasks if t.status in (AiTaskStatus.PENDING, AiTaskStatus.PROCESSING))

        durations = [
            (ensure_utc(t.completed_at) - ensure_utc(t.processed_at or t.created_at)).total_seconds()
            for t in completed
            if t.completed_at is not None
        ]
        return AiPerformanceMetrics(
            period_hours=hours,
            total=len(tasks),
            completed=len(completed),
            failed=failed,
            pending=pending,
            success_rate=round(len(completed) / len(tasks) * 100, 2) if tasks else 0.0,
            average_processing_seconds=round(sum(durations) / len(durations), 2) if durations else None,
        )

    async def find_stuck_claims(self, limit: int = 100) -> List[StuckClaim]:
        """Pending claims with unfinished AI work older than the stuck threshold."""
        cutoff = self.clock.now() - timedelta(minutes=self.rules.stuck_claim_minutes)
        rows = await self.claims.list_stuck(cutoff, limit=limit)
        return [
            StuckClaim(
                id=claim.id,
                claim_id=claim.claim_id,
                created_at=ensure_utc(claim.created_at),
                total_tasks=total,
                completed_tasks=completed,
            )
            for claim, total, completed in rows
        ]

    async def run_checks(self) -> MonitoringReport:
        """Collect every metric and log alerts for breached thresholds."""
        queue = await self.get_queue_depth()
        slo = await self.get_slo_report()
        performance = await self.get_performance_metrics()
        stuck = await self.find_stuck_claims()

        if queue.alert:
            LOGGER.error(
                f"AI task queue depth {queue.total} exceeds threshold {queue.threshold}",
                extra={"pending": queue.pending, "processing": queue.processing},
            )
        if not slo.meets_target:
            LOGGER.warning(
                f"AI processing SLO breached: {slo.percent_within_target}% of "
                f"{slo.total_completed} tasks completed within {slo.max_duration_minutes} minutes "
                f"(target {slo.target_percent}%)"
            )
        for item in stuck:
            LOGGER.warning(
                f"Claim {item.claim_id} stuck in AI processing: "
                f"{item.completed_tasks}/{item.total_tasks} tasks completed",
                extra={"claim_id": item.claim_id},
            )

        LOGGER.info(
            f"Monitoring check: queue={queue.total}, slo={slo.percent_within_target}%, "
            f"success_rate={performance.success_rate}%, stuck_claims={len(stuck)}"
        )
        return MonitoringReport(queue=queue, slo=slo, performance=performance, stuck_claims=stuck)
