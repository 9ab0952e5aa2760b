"""Periodic maintenance activities."""

from temporalio import activity

from cropclaim.core.database import async_session_maker
from cropclaim.services.idempotency_service import IdempotencyService
from cropclaim.services.monitoring_service import MonitoringService
from cropclaim.temporal.core.activity_registry import ActivityRegistry


@ActivityRegistry.register("maintenance", "cleanup_expired_idempotency")
@activity.defn(name="cleanup_expired_idempotency")
async def cleanup_expired_idempotency() -> dict:
    """Delete idempotency records past their TTL."""
    async with async_session_maker() as session:
        deleted = await IdempotencyService(session).cleanup_expired()
    activity.logger.info(f"Deleted {deleted} expired idempotency records")
    return {"deleted": deleted}


@ActivityRegistry.register("maintenance", "run_monitoring_checks")
@activity.defn(name="run_monitoring_checks")
async def run_monitoring_checks() -> dict:
    """Check queue depth, the AI processing SLO and stuck claims."""
    async with async_session_maker() as session:
        report = await MonitoringService(session).run_checks()
    return {
        "queue_depth": report.queue.total,
        "queue_alert": report.queue.alert,
        "slo_percent": report.slo.percent_within_target,
        "slo_met": report.slo.meets_target,
        "stuck_claims": len(report.stuck_claims),
    }
