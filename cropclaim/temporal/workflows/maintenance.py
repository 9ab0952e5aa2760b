"""Cron workflows for periodic maintenance jobs."""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

from cropclaim.temporal.core.constants import (
    IDEMPOTENCY_CLEANUP_CRON,
    MAINTENANCE_ACTIVITY_TIMEOUT_SECONDS,
    MAINTENANCE_TASK_QUEUE,
    MONITORING_CHECK_CRON,
    STALE_TASK_RECOVERY_CRON,
)
from cropclaim.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType

_RETRY = RetryPolicy(maximum_attempts=3, initial_interval=timedelta(seconds=5))


async def _run_job(activity_name: str) -> dict:
    return await workflow.execute_activity(
        activity_name,
        start_to_close_timeout=timedelta(seconds=MAINTENANCE_ACTIVITY_TIMEOUT_SECONDS),
        retry_policy=_RETRY,
    )


@WorkflowRegistry.register(
    category=WorkflowType.MAINTENANCE,
    task_queue=MAINTENANCE_TASK_QUEUE,
    cron_schedule=IDEMPOTENCY_CLEANUP_CRON,
)
@workflow.defn
class IdempotencyCleanupWorkflow:
    @workflow.run
    async def run(self) -> dict:
        return await _run_job("cleanup_expired_idempotency")


@WorkflowRegistry.register(
    category=WorkflowType.MAINTENANCE,
    task_queue=MAINTENANCE_TASK_QUEUE,
    cron_schedule=MONITORING_CHECK_CRON,
)
@workflow.defn
class MonitoringCheckWorkflow:
    @workflow.run
    async def run(self) -> dict:
        return await _run_job("run_monitoring_checks")


@WorkflowRegistry.register(
    category=WorkflowType.MAINTENANCE,
    task_queue=MAINTENANCE_TASK_QUEUE,
    cron_schedule=STALE_TASK_RECOVERY_CRON,
)
@workflow.defn
class StaleTaskRecoveryWorkflow:
    @workflow.run
    async def run(self) -> dict:
        return await _run_job("recover_stale_ai_tasks")
