"""Temporal worker service for AI tasks and maintenance jobs.

This worker:
- Connects to the Temporal server configured by TEMPORAL_HOST/TEMPORAL_PORT
- Discovers and registers all workflows and activities
- Runs one worker per task queue
- Starts the cron maintenance workflows once
- Serves a small health check endpoint
"""

import asyncio
import os

import uvicorn
from fastapi import FastAPI
from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from cropclaim.core.config import settings

# Trigger discovery of all components
from cropclaim.temporal.core.discovery import discover_all
discover_all()

from cropclaim.temporal.core.workflow_registry import WorkflowRegistry
from cropclaim.temporal.core.activity_registry import ActivityRegistry
from cropclaim.temporal.core.constants import AI_TASK_QUEUE
from cropclaim.utils.logging import get_logger

logger = get_logger(__name__)

# Create a minimal FastAPI app for health checks
app = FastAPI(title="CropClaim Worker Health Check")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "cropclaim-worker"}


async def run_health_check_server():
    """Run the health check server."""
    port = int(os.getenv("WORKER_HEALTH_PORT", 8001))
    logger.info(f"Starting health check server on port {port}")
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def connect_with_retry(max_retries: int = 5, retry_delay: int = 5) -> Client:
    """Connect to Temporal, retrying while the server starts up."""
    for attempt in range(max_retries):
        try:
            logger.info(
                f"Connecting to Temporal server at {settings.temporal_host}:{settings.temporal_port} "
                f"(Attempt {attempt + 1}/{max_retries})"
            )
            return await Client.connect(
                target_host=f"{settings.temporal_host}:{settings.temporal_port}",
                namespace=settings.temporal_namespace,
            )
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise


async def ensure_maintenance_schedules(client: Client) -> None:
    """Start each cron workflow once; a running instance is left alone."""
    for metadata in WorkflowRegistry.get_scheduled():
        workflow_id = f"cropclaim-{metadata.name}"
        try:
            await client.start_workflow(
                metadata.workflow_class.run,
                id=workflow_id,
                task_queue=metadata.task_queue,
                cron_schedule=metadata.cron_schedule,
            )
            logger.info(f"Started cron workflow {workflow_id} ({metadata.cron_schedule})")
        except WorkflowAlreadyStartedError:
            logger.debug(f"Cron workflow {workflow_id} already running")


async def run_workers():
    """Connect to Temporal and run workers."""
    client = await connect_with_retry()
    logger.info("Successfully connected to Temporal server")

    all_workflows = WorkflowRegistry.get_all_workflows()
    all_activities = ActivityRegistry.get_all_activities()

    logger.info(f"Registered {len(all_workflows)} workflows and {len(all_activities)} activities")

    # Group workflows by task queue
    queues = {}
    for wf_name, metadata in all_workflows.items():
        queue = metadata.task_queue or AI_TASK_QUEUE
        queues.setdefault(queue, []).append(metadata.workflow_class)
        logger.debug(f"Workflow '{wf_name}' assigned to queue '{queue}'")

    workers = []
    for queue_name, workflows in queues.items():
        logger.debug(f"Starting worker for queue: {queue_name} (Workflows: {[w.__name__ for w in workflows]})")

        # Activities are registered with every worker
        worker = Worker(
            client,
            task_queue=queue_name,
            workflows=workflows,
            activities=list(all_activities.values()),
            max_concurrent_activities=10,
            max_concurrent_workflow_tasks=20,
            workflow_runner=SandboxedWorkflowRunner(
                restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
            ),
        )
        workers.append(worker.run())

    await ensure_maintenance_schedules(client)

    logger.info("=" * 60)
    logger.info("Temporal Workers Initialized Successfully")
    logger.info(f"Connected to: {settings.temporal_host}:{settings.temporal_port}")
    logger.info(f"Queues: {list(queues.keys())}")
    logger.info("=" * 60)

    await asyncio.gather(*workers)


async def main():
    """Start the Temporal worker(s)."""
    await asyncio.gather(
        run_health_check_server(),
        run_workers(),
    )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Workers stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
