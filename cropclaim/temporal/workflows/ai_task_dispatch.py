"""Delayed dispatch of a single AI task attempt."""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

from cropclaim.temporal.core.constants import AI_TASK_ACTIVITY_TIMEOUT_SECONDS, AI_TASK_QUEUE
from cropclaim.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(category=WorkflowType.AI_TASKS, task_queue=AI_TASK_QUEUE)
@workflow.defn
class AiTaskDispatchWorkflow:
    """Run one attempt of an AI task after the workflow's start delay.

    Temporal retries are disabled; the task queue records failures and
    schedules the next attempt itself.
    """

    @workflow.run
    async def run(self, task_id: str) -> dict:
        return await workflow.execute_activity(
            "run_ai_task",
            args=[task_id],
            start_to_close_timeout=timedelta(seconds=AI_TASK_ACTIVITY_TIMEOUT_SECONDS),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )
