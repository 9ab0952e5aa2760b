"""Shared constants for Temporal workflows."""

from cropclaim.core.config import settings

# Task Queues
AI_TASK_QUEUE = settings.temporal_task_queue
MAINTENANCE_TASK_QUEUE = "maintenance-queue"

# Timeouts
AI_TASK_ACTIVITY_TIMEOUT_SECONDS = settings.pipeline.ai_task_processing_timeout_seconds
MAINTENANCE_ACTIVITY_TIMEOUT_SECONDS = 120

# Cron schedules for maintenance workflows
IDEMPOTENCY_CLEANUP_CRON = "0 * * * *"      # hourly
MONITORING_CHECK_CRON = "*/15 * * * *"      # every 15 minutes
STALE_TASK_RECOVERY_CRON = "*/5 * * * *"    # every 5 minutes
