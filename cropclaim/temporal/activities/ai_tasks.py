"""Activities that execute AI tasks on a Temporal worker."""

from uuid import UUID

from temporalio import activity

from cropclaim.services.ai_task_queue import build_task_queue
from cropclaim.temporal.core.activity_registry import ActivityRegistry
from cropclaim.temporal.scheduler import TemporalTaskScheduler


@ActivityRegistry.register("ai_tasks", "run_ai_task")
@activity.defn(name="run_ai_task")
async def run_ai_task(task_id: str) -> dict:
    """Run one attempt of an AI task.

    Failures are recorded by the queue, which schedules the next attempt
    as a new delayed workflow; the activity itself only fails on
    infrastructure errors.
    """
    activity.logger.info(f"Running AI task {task_id}", extra={"task_id": task_id})

    queue = build_task_queue(scheduler=TemporalTaskScheduler())
    await queue.process_task(UUID(task_id))

    task = await queue.get_task(UUID(task_id))
    return {
        "task_id": task_id,
        "status": task.status.value,
        "retry_count": task.retry_count,
    }


@ActivityRegistry.register("ai_tasks", "recover_stale_ai_tasks")
@activity.defn(name="recover_stale_ai_tasks")
async def recover_stale_ai_tasks() -> dict:
    """Re-dispatch pending tasks whose scheduled attempt never ran."""
    queue = build_task_queue(scheduler=TemporalTaskScheduler())
    recovered = await queue.recover_stale_pending()
    activity.logger.info(f"Recovered {recovered} stale AI tasks")
    return {"recovered": recovered}
