"""Unit tests for the AI task queue, retry ladder and aggregation barrier."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from cropclaim.core.clock import ensure_utc
from cropclaim.core.exceptions import AiTaskNotFoundError, AiTaskStateError
from cropclaim.database.enums import AiTaskStatus, AiTaskType, ClaimStatus, VerificationStatus
from cropclaim.repositories.claim_repository import ClaimRepository
from cropclaim.services.ai.handlers import AiHandlerRegistry, BaseAiHandler
from cropclaim.services.ai.models import AiTaskOutput
from cropclaim.services.ai_task_queue import ADMIN_REVIEW_TITLE, AiTaskQueue


class ScriptedHandler(BaseAiHandler):
    """Fails a fixed number of times, then returns the given output."""

    def __init__(self, task_type: AiTaskType, failures: int = 0, output: AiTaskOutput = None):
        self.task_type = task_type
        self.failures = failures
        self.output = output or AiTaskOutput(report={"status": "processed"})
        self.calls = 0

    async def analyze(self, input_data):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("model endpoint unavailable")
        return self.output


class ErrorReportingHandler(BaseAiHandler):
    task_type = AiTaskType.OCR

    async def analyze(self, input_data):
        return AiTaskOutput(error="image unreadable")


@pytest.fixture
def handlers():
    return {
        AiTaskType.OCR: ScriptedHandler(AiTaskType.OCR, output=AiTaskOutput(report={"text": "hail"})),
        AiTaskType.SATELLITE: ScriptedHandler(
            AiTaskType.SATELLITE,
            output=AiTaskOutput(damage_percent=42.5, recommended_amount=21250.0, report={"ndvi_drop": 0.4}),
        ),
        AiTaskType.FRAUD_DETECTION: ScriptedHandler(
            AiTaskType.FRAUD_DETECTION,
            output=AiTaskOutput(validation_flags={"fraud_risk": "low"}, report={"match_score": 88.0}),
        ),
    }


@pytest.fixture
def queue(session_factory, scheduler, notifier, clock, handlers) -> AiTaskQueue:
    return AiTaskQueue(
        session_factory,
        scheduler,
        handlers=AiHandlerRegistry(handlers.values()),
        notifier=notifier,
        clock=clock,
        max_retries=3,
        retry_delays=[1, 5, 15],
    )


async def enqueue_all(queue: AiTaskQueue, claim_id):
    return {
        task_type: await queue.enqueue(claim_id, task_type, {"images": ["a.jpg"]})
        for task_type in (AiTaskType.OCR, AiTaskType.SATELLITE, AiTaskType.FRAUD_DETECTION)
    }


class TestRetryLadder:
    """Tests for failure handling and dead-lettering."""

    def test_retry_delay_table(self, queue):
        assert [queue.retry_delay(n) for n in (1, 2, 3)] == [1.0, 5.0, 15.0]
        assert queue.retry_delay(7) == 15.0

    async def test_enqueue_dispatches_immediately(self, queue, scheduler, make_claim, reload_task):
        claim = await make_claim()

        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {"images": []})

        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.PENDING
        assert task.retry_count == 0
        assert task.max_retries == 3
        assert scheduler.scheduled == [(task_id, 0.0)]

    async def test_failures_follow_delay_table_then_dead_letter(
        self, queue, scheduler, handlers, make_claim, reload_task, clock
    ):
        handlers[AiTaskType.OCR].failures = 10
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {"images": ["a.jpg"]})

        await queue.process_task(task_id)
        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.PENDING
        assert task.retry_count == 1
        assert task.error_message == "model endpoint unavailable"
        assert ensure_utc(task.next_attempt_at) == clock.now() + timedelta(seconds=1)

        await queue.process_task(task_id)
        await queue.process_task(task_id)
        await queue.process_task(task_id)

        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.FAILED
        assert task.retry_count == 3
        assert task.error_message.startswith("Max retries reached")
        assert scheduler.delays_for(task_id) == [0.0, 1.0, 5.0, 15.0]
        assert handlers[AiTaskType.OCR].calls == 4

    async def test_dead_lettered_task_is_not_attempted_again(self, queue, handlers, make_claim, reload_task):
        handlers[AiTaskType.OCR].failures = 10
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})
        for _ in range(4):
            await queue.process_task(task_id)

        await queue.process_task(task_id)

        assert handlers[AiTaskType.OCR].calls == 4
        assert (await reload_task(task_id)).status == AiTaskStatus.FAILED

    async def test_transient_failure_recovers(self, queue, scheduler, handlers, make_claim, reload_task):
        handlers[AiTaskType.OCR].failures = 2
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})

        for _ in range(3):
            await queue.process_task(task_id)

        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.COMPLETED
        assert task.retry_count == 2
        assert task.error_message is None
        assert task.output_data["report"] == {"text": "hail"}
        assert scheduler.delays_for(task_id) == [0.0, 1.0, 5.0]

    async def test_handler_error_output_counts_as_failure(
        self, session_factory, scheduler, clock, make_claim, reload_task
    ):
        queue = AiTaskQueue(
            session_factory,
            scheduler,
            handlers=AiHandlerRegistry([ErrorReportingHandler()]),
            clock=clock,
            max_retries=3,
            retry_delays=[1, 5, 15],
        )
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})

        await queue.process_task(task_id)

        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.PENDING
        assert task.retry_count == 1
        assert task.error_message == "image unreadable"

    async def test_failure_recording_result_goes_through_retry_ladder(
        self, queue, scheduler, make_claim, reload_task, monkeypatch
    ):
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})
        update_fields = ClaimRepository.update_fields
        calls = []

        async def flaky_update_fields(self, id, values, **conditions):
            calls.append(id)
            if len(calls) == 1:
                raise OperationalError("UPDATE claims", {}, Exception("database is locked"))
            return await update_fields(self, id, values, **conditions)

        monkeypatch.setattr(ClaimRepository, "update_fields", flaky_update_fields)

        await queue.process_task(task_id)

        task = await reload_task(task_id)
        assert task.status == AiTaskStatus.PENDING
        assert task.retry_count == 1
        assert "database is locked" in task.error_message
        assert scheduler.delays_for(task_id) == [0.0, 1.0]

        await queue.process_task(task_id)

        assert (await reload_task(task_id)).status == AiTaskStatus.COMPLETED

    async def test_processing_task_is_not_claimed_twice(self, queue, handlers, make_claim, make_task):
        claim = await make_claim()
        task = await make_task(claim.id, AiTaskType.OCR, status=AiTaskStatus.PROCESSING)

        await queue.process_task(task.id)

        assert handlers[AiTaskType.OCR].calls == 0


class TestManualRetry:
    """Tests for operator retries of dead-lettered tasks."""

    async def test_retry_resets_failed_task(self, queue, scheduler, make_claim, make_task, reload_task):
        claim = await make_claim()
        task = await make_task(
            claim.id, status=AiTaskStatus.FAILED, retry_count=3, error_message="Max retries reached: boom"
        )

        await queue.retry_task(task.id)

        reloaded = await reload_task(task.id)
        assert reloaded.status == AiTaskStatus.PENDING
        assert reloaded.retry_count == 0
        assert reloaded.error_message is None
        assert scheduler.scheduled == [(task.id, 0.0)]

    async def test_retry_rejects_task_not_failed(self, queue, make_claim, make_task):
        claim = await make_claim()
        task = await make_task(claim.id, status=AiTaskStatus.COMPLETED)

        with pytest.raises(AiTaskStateError):
            await queue.retry_task(task.id)

    async def test_retry_unknown_task(self, queue):
        with pytest.raises(AiTaskNotFoundError):
            await queue.retry_task(uuid4())

    async def test_failed_tasks_listing(self, queue, make_claim, make_task):
        claim = await make_claim()
        failed = await make_task(claim.id, status=AiTaskStatus.FAILED, retry_count=3)
        await make_task(claim.id, AiTaskType.SATELLITE, status=AiTaskStatus.COMPLETED)

        tasks = await queue.get_failed_tasks()

        assert [t.id for t in tasks] == [failed.id]


class TestAggregationBarrier:
    """Tests for the move to admin review once every task has completed."""

    async def test_claim_advances_only_after_all_tasks_complete(
        self, queue, admin_user, notifier, make_claim, reload_claim
    ):
        claim = await make_claim()
        task_ids = await enqueue_all(queue, claim.id)

        await queue.process_task(task_ids[AiTaskType.OCR])
        await queue.process_task(task_ids[AiTaskType.SATELLITE])
        assert (await reload_claim(claim.id)).verification_status == VerificationStatus.PENDING
        assert notifier.notifications == []

        await queue.process_task(task_ids[AiTaskType.FRAUD_DETECTION])

        reloaded = await reload_claim(claim.id)
        assert reloaded.verification_status == VerificationStatus.AI_PROCESSED_ADMIN_REVIEW
        assert reloaded.ai_processed_at is not None
        assert [n.title for n in notifier.for_user(admin_user.id)] == [ADMIN_REVIEW_TITLE]

    async def test_outputs_are_merged_per_task_type(self, queue, make_claim, reload_claim):
        claim = await make_claim()
        task_ids = await enqueue_all(queue, claim.id)
        for task_id in task_ids.values():
            await queue.process_task(task_id)

        reloaded = await reload_claim(claim.id)
        assert reloaded.ai_damage_percent == 42.5
        assert float(reloaded.ai_recommended_amount) == 21250.0
        assert reloaded.ai_validation_flags == {"fraud_detection": {"fraud_risk": "low"}}
        assert reloaded.ai_report == {
            "ocr": {"text": "hail"},
            "satellite": {"ndvi_drop": 0.4},
            "fraud_detection": {"match_score": 88.0},
        }

    async def test_dead_lettered_task_blocks_advance(
        self, queue, handlers, notifier, make_claim, reload_claim
    ):
        handlers[AiTaskType.SATELLITE].failures = 10
        claim = await make_claim()
        task_ids = await enqueue_all(queue, claim.id)

        await queue.process_task(task_ids[AiTaskType.OCR])
        await queue.process_task(task_ids[AiTaskType.FRAUD_DETECTION])
        for _ in range(4):
            await queue.process_task(task_ids[AiTaskType.SATELLITE])

        assert (await reload_claim(claim.id)).verification_status == VerificationStatus.PENDING
        assert notifier.notifications == []

    async def test_manual_retry_unblocks_claim(self, queue, handlers, make_claim, reload_claim):
        handlers[AiTaskType.SATELLITE].failures = 4
        claim = await make_claim()
        task_ids = await enqueue_all(queue, claim.id)
        for task_id in task_ids.values():
            await queue.process_task(task_id)
        for _ in range(3):
            await queue.process_task(task_ids[AiTaskType.SATELLITE])

        await queue.retry_task(task_ids[AiTaskType.SATELLITE])
        await queue.process_task(task_ids[AiTaskType.SATELLITE])

        reloaded = await reload_claim(claim.id)
        assert reloaded.verification_status == VerificationStatus.AI_PROCESSED_ADMIN_REVIEW

    async def test_barrier_fires_once(self, queue, admin_user, notifier, make_claim):
        claim = await make_claim()
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})
        await queue.process_task(task_id)

        assert await queue._check_aggregation(claim.id) is False
        assert len(notifier.for_user(admin_user.id)) == 1

    async def test_claim_without_tasks_never_advances(self, queue, make_claim, reload_claim):
        claim = await make_claim()

        assert await queue._check_aggregation(claim.id) is False
        assert (await reload_claim(claim.id)).verification_status == VerificationStatus.PENDING

    async def test_cancelled_claim_skips_admin_notification(
        self, queue, admin_user, notifier, make_claim, clock
    ):
        claim = await make_claim(status=ClaimStatus.CANCELLED, deleted_at=clock.now())
        task_id = await queue.enqueue(claim.id, AiTaskType.OCR, {})

        await queue.process_task(task_id)

        assert notifier.notifications == []


class TestStaleRecovery:
    """Tests for recovering tasks whose attempt was lost."""

    async def test_overdue_pending_tasks_are_redispatched(
        self, queue, scheduler, make_claim, make_task, clock
    ):
        claim = await make_claim()
        stale = await make_task(claim.id, next_attempt_at=clock.now() - timedelta(minutes=30))
        await make_task(claim.id, AiTaskType.SATELLITE, next_attempt_at=clock.now() + timedelta(seconds=15))
        await make_task(
            claim.id,
            AiTaskType.FRAUD_DETECTION,
            status=AiTaskStatus.FAILED,
            next_attempt_at=clock.now() - timedelta(minutes=30),
        )

        recovered = await queue.recover_stale_pending(stale_after_minutes=5)

        assert recovered == 1
        assert scheduler.scheduled == [(stale.id, 0.0)]

    async def test_stuck_processing_task_is_retried(
        self, queue, scheduler, make_claim, make_task, reload_task, clock
    ):
        claim = await make_claim()
        stuck = await make_task(
            claim.id,
            status=AiTaskStatus.PROCESSING,
            next_attempt_at=None,
            processed_at=clock.now() - timedelta(minutes=10),
        )
        running = await make_task(
            claim.id,
            AiTaskType.SATELLITE,
            status=AiTaskStatus.PROCESSING,
            next_attempt_at=None,
            processed_at=clock.now() - timedelta(seconds=30),
        )

        recovered = await queue.recover_stale_pending(stale_after_minutes=5, processing_timeout_seconds=300)

        assert recovered == 1
        task = await reload_task(stuck.id)
        assert task.status == AiTaskStatus.PENDING
        assert task.retry_count == 1
        assert "300s" in task.error_message
        assert scheduler.scheduled == [(stuck.id, 1.0)]
        assert (await reload_task(running.id)).status == AiTaskStatus.PROCESSING

    async def test_stuck_task_without_retries_left_is_dead_lettered(
        self, queue, make_claim, make_task, reload_task, clock
    ):
        claim = await make_claim()
        stuck = await make_task(
            claim.id,
            status=AiTaskStatus.PROCESSING,
            retry_count=3,
            next_attempt_at=None,
            processed_at=clock.now() - timedelta(minutes=10),
        )

        await queue.recover_stale_pending(processing_timeout_seconds=300)

        task = await reload_task(stuck.id)
        assert task.status == AiTaskStatus.FAILED
        assert task.error_message.startswith("Max retries reached")

    async def test_missed_aggregation_is_completed_by_recovery(
        self, queue, admin_user, notifier, make_claim, reload_claim, monkeypatch
    ):
        claim = await make_claim()
        task_ids = await enqueue_all(queue, claim.id)
        advance = ClaimRepository.advance_to_admin_review

        async def unavailable(self, id, now):
            raise OperationalError("UPDATE claims", {}, Exception("connection reset"))

        monkeypatch.setattr(ClaimRepository, "advance_to_admin_review", unavailable)
        for task_id in task_ids.values():
            await queue.process_task(task_id)
        assert (await reload_claim(claim.id)).verification_status == VerificationStatus.PENDING

        monkeypatch.setattr(ClaimRepository, "advance_to_admin_review", advance)
        await queue.recover_stale_pending()

        assert (await reload_claim(claim.id)).verification_status == VerificationStatus.AI_PROCESSED_ADMIN_REVIEW
        assert [n.title for n in notifier.for_user(admin_user.id)] == [ADMIN_REVIEW_TITLE]
