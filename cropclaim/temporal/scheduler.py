"""Dispatch of AI tasks, immediately or after a retry delay.

The queue never sleeps inline: every dispatch and every retry is handed
to a ``TaskScheduler``. ``InProcessTaskScheduler`` runs dispatches on the
current event loop; ``TemporalTaskScheduler`` turns each dispatch into a
delayed Temporal workflow so pending retries survive a restart.
"""

import asyncio
import uuid
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Protocol, Set
from uuid import UUID

from temporalio.client import Client as TemporalClient

from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.config import settings
from cropclaim.temporal.core.constants import AI_TASK_QUEUE
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

TaskProcessor = Callable[[UUID], Awaitable[None]]


class TaskScheduler(Protocol):
    """Realises dispatch and retry delays as scheduled re-dispatch."""

    def bind(self, processor: TaskProcessor) -> None:
        ...

    async def schedule(self, task_id: UUID, delay_seconds: float = 0.0) -> None:
        ...


class InProcessTaskScheduler:
    """One asyncio task per dispatch, delayed on the injected clock."""

    def __init__(self, clock: Clock = system_clock, processor: Optional[TaskProcessor] = None):
        self.clock = clock
        self._processor = processor
        self._pending: Set[asyncio.Task] = set()

    def bind(self, processor: TaskProcessor) -> None:
        self._processor = processor

    async def schedule(self, task_id: UUID, delay_seconds: float = 0.0) -> None:
        if self._processor is None:
            raise RuntimeError("InProcessTaskScheduler has no processor bound")
        dispatch = asyncio.create_task(self._run(task_id, delay_seconds))
        self._pending.add(dispatch)
        dispatch.add_done_callback(self._pending.discard)

    async def _run(self, task_id: UUID, delay_seconds: float) -> None:
        try:
            await self.clock.sleep(delay_seconds)
            await self._processor(task_id)
        except asyncio.CancelledError:
            LOGGER.info(f"Dispatch of AI task {task_id} cancelled")
            raise
        except Exception as e:
            LOGGER.error(
                f"Dispatch of AI task {task_id} failed: {e}",
                exc_info=True,
                extra={"task_id": str(task_id)},
            )

    @property
    def outstanding(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding dispatches, including ones they schedule."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding dispatches; pending tasks are recovered later."""
        for dispatch in list(self._pending):
            dispatch.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)


class TemporalTaskScheduler:
    """Start one delayed ``AiTaskDispatchWorkflow`` per dispatch."""

    def __init__(
        self,
        client_provider: Optional[Callable[[], Awaitable[TemporalClient]]] = None,
        task_queue: Optional[str] = None,
    ):
        if client_provider is None:
            from cropclaim.temporal.client import get_temporal_client

            client_provider = get_temporal_client
        self._client_provider = client_provider
        self.task_queue = task_queue or AI_TASK_QUEUE

    def bind(self, processor: TaskProcessor) -> None:
        # Workers build their own queue inside the activity
        pass

    async def schedule(self, task_id: UUID, delay_seconds: float = 0.0) -> None:
        from cropclaim.temporal.workflows.ai_task_dispatch import AiTaskDispatchWorkflow

        client = await self._client_provider()
        workflow_id = f"ai-task-{task_id}-{uuid.uuid4().hex[:8]}"
        await client.start_workflow(
            AiTaskDispatchWorkflow.run,
            str(task_id),
            id=workflow_id,
            task_queue=self.task_queue,
            start_delay=timedelta(seconds=delay_seconds) if delay_seconds > 0 else None,
        )
        LOGGER.info(
            f"Scheduled AI task {task_id} via Temporal workflow {workflow_id}",
            extra={"task_id": str(task_id), "delay_seconds": delay_seconds},
        )


def build_scheduler(clock: Clock = system_clock) -> TaskScheduler:
    """Scheduler selected by AI_TASK_SCHEDULER."""
    if settings.pipeline.ai_task_scheduler == "temporal":
        return TemporalTaskScheduler()
    return InProcessTaskScheduler(clock=clock)
