"""Unit tests for queue, SLO and stuck-claim monitoring."""

from datetime import timedelta

import pytest

from cropclaim.core.config import PipelineSettings
from cropclaim.database.enums import AiTaskStatus, AiTaskType, VerificationStatus
from cropclaim.services.monitoring_service import MonitoringService


@pytest.fixture
def monitoring(db_session, clock) -> MonitoringService:
    return MonitoringService(db_session, clock=clock)


@pytest.fixture
def completed_task(make_task, clock):
    """Completed task that took ``seconds`` from pickup to completion."""

    async def _make(claim_id, seconds: float, age_minutes: float = 30):
        started = clock.now() - timedelta(minutes=age_minutes)
        return await make_task(
            claim_id,
            status=AiTaskStatus.COMPLETED,
            created_at=started,
            processed_at=started,
            completed_at=started + timedelta(seconds=seconds),
        )

    return _make


class TestQueueDepth:
    async def test_counts_pending_and_processing(self, monitoring, make_claim, make_task):
        claim = await make_claim()
        await make_task(claim.id, AiTaskType.OCR)
        await make_task(claim.id, AiTaskType.SATELLITE)
        await make_task(claim.id, AiTaskType.FRAUD_DETECTION, status=AiTaskStatus.PROCESSING)
        await make_task(claim.id, AiTaskType.OCR, status=AiTaskStatus.COMPLETED)

        depth = await monitoring.get_queue_depth()

        assert (depth.pending, depth.processing, depth.total) == (2, 1, 3)
        assert depth.threshold == 100
        assert depth.alert is False

    async def test_alert_above_threshold(self, db_session, clock, make_claim, make_task):
        rules = PipelineSettings(QUEUE_DEPTH_ALERT_THRESHOLD=2)
        service = MonitoringService(db_session, clock=clock, rules=rules)
        claim = await make_claim()
        for task_type in AiTaskType:
            await make_task(claim.id, task_type)

        depth = await service.get_queue_depth()

        assert depth.total == 3
        assert depth.alert is True

    async def test_threshold_itself_is_not_an_alert(self, db_session, clock, make_claim, make_task):
        rules = PipelineSettings(QUEUE_DEPTH_ALERT_THRESHOLD=1)
        service = MonitoringService(db_session, clock=clock, rules=rules)
        claim = await make_claim()
        await make_task(claim.id)

        assert (await service.get_queue_depth()).alert is False


class TestSloReport:
    async def test_empty_window_meets_target(self, monitoring):
        report = await monitoring.get_slo_report()

        assert report.total_completed == 0
        assert report.percent_within_target == 100.0
        assert report.meets_target is True

    async def test_share_within_target(self, monitoring, make_claim, completed_task):
        claim = await make_claim()
        for seconds in (30, 120, 540):
            await completed_task(claim.id, seconds)
        await completed_task(claim.id, 20 * 60)

        report = await monitoring.get_slo_report()

        assert report.total_completed == 4
        assert report.within_target == 3
        assert report.percent_within_target == 75.0
        assert report.meets_target is False

    async def test_tasks_outside_window_are_ignored(self, monitoring, make_claim, completed_task):
        claim = await make_claim()
        await completed_task(claim.id, 30)
        await completed_task(claim.id, 20 * 60, age_minutes=90)

        report = await monitoring.get_slo_report()

        assert report.total_completed == 1
        assert report.meets_target is True

    async def test_window_is_by_completion_time(self, monitoring, make_claim, completed_task):
        claim = await make_claim()
        await completed_task(claim.id, 30 * 60, age_minutes=75)

        report = await monitoring.get_slo_report()

        assert report.total_completed == 1
        assert report.within_target == 0


class TestPerformanceMetrics:
    async def test_no_tasks(self, monitoring):
        metrics = await monitoring.get_performance_metrics()

        assert metrics.total == 0
        assert metrics.success_rate == 0.0
        assert metrics.average_processing_seconds is None

    async def test_success_rate_and_duration(self, monitoring, make_claim, make_task, completed_task):
        claim = await make_claim()
        await completed_task(claim.id, 60)
        await completed_task(claim.id, 180)
        await make_task(claim.id, status=AiTaskStatus.FAILED, retry_count=3)
        await make_task(claim.id, AiTaskType.SATELLITE)

        metrics = await monitoring.get_performance_metrics(hours=24)

        assert (metrics.total, metrics.completed, metrics.failed, metrics.pending) == (4, 2, 1, 1)
        assert metrics.success_rate == 50.0
        assert metrics.average_processing_seconds == 120.0


class TestStuckClaims:
    async def test_only_old_pending_claims_with_open_tasks(self, monitoring, clock, make_claim, make_task):
        two_hours_ago = clock.now() - timedelta(hours=2)

        stuck = await make_claim(created_at=two_hours_ago)
        await make_task(stuck.id, AiTaskType.OCR, status=AiTaskStatus.COMPLETED)
        await make_task(stuck.id, AiTaskType.SATELLITE, status=AiTaskStatus.FAILED)

        finished = await make_claim(created_at=two_hours_ago)
        await make_task(finished.id, status=AiTaskStatus.COMPLETED)

        recent = await make_claim(created_at=clock.now() - timedelta(minutes=10))
        await make_task(recent.id)

        reviewed = await make_claim(
            created_at=two_hours_ago, verification_status=VerificationStatus.AI_PROCESSED_ADMIN_REVIEW
        )
        await make_task(reviewed.id)

        await make_claim(created_at=two_hours_ago)

        result = await monitoring.find_stuck_claims()

        assert [item.claim_id for item in result] == [stuck.claim_id]
        assert (result[0].total_tasks, result[0].completed_tasks) == (2, 1)

    async def test_run_checks_collects_everything(self, db_session, clock, make_claim, make_task):
        rules = PipelineSettings(QUEUE_DEPTH_ALERT_THRESHOLD=0)
        service = MonitoringService(db_session, clock=clock, rules=rules)
        claim = await make_claim(created_at=clock.now() - timedelta(hours=3))
        await make_task(claim.id, created_at=clock.now() - timedelta(hours=3))

        report = await service.run_checks()

        assert report.queue.alert is True
        assert report.slo.meets_target is True
        assert (report.performance.total, report.performance.pending) == (1, 1)
        assert [item.claim_id for item in report.stuck_claims] == [claim.claim_id]
