"""FastAPI dependencies: actor context, collaborators and services."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.auth import ActorContext, Role
from cropclaim.core.clock import Clock, system_clock
from cropclaim.core.database import get_async_session as get_session
from cropclaim.core.exceptions import AuthenticationError
from cropclaim.services.admin_review_service import AdminReviewService
from cropclaim.services.ai_task_queue import AiTaskQueue
from cropclaim.services.claim_service import ClaimService
from cropclaim.services.collaborators import (
    AuditSink,
    ExtensionFileInspector,
    FileInspector,
    LoggingAuditSink,
    LoggingNotificationSink,
    NotificationSink,
)
from cropclaim.services.insurer_service import InsurerDecisionService
from cropclaim.services.monitoring_service import MonitoringService

_notifier = LoggingNotificationSink()
_audit = LoggingAuditSink()
_file_inspector = ExtensionFileInspector()


async def get_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_actor_role: Annotated[Optional[str], Header()] = None,
    x_insurer_id: Annotated[Optional[str], Header()] = None,
) -> ActorContext:
    """Build the actor from headers set by the upstream authentication layer."""
    if not x_actor_id or not x_actor_role:
        raise AuthenticationError("Missing actor headers")
    try:
        return ActorContext(
            actor_id=UUID(x_actor_id),
            role=Role(x_actor_role.upper()),
            insurer_id=UUID(x_insurer_id) if x_insurer_id else None,
        )
    except ValueError as e:
        raise AuthenticationError(f"Invalid actor headers: {e}", original_error=e)


def get_clock() -> Clock:
    return system_clock


def get_notifier() -> NotificationSink:
    return _notifier


def get_audit_sink() -> AuditSink:
    return _audit


def get_file_inspector() -> FileInspector:
    return _file_inspector


def get_task_queue(request: Request) -> AiTaskQueue:
    return request.app.state.task_queue


async def get_claim_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    task_queue: Annotated[AiTaskQueue, Depends(get_task_queue)],
    file_inspector: Annotated[FileInspector, Depends(get_file_inspector)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> ClaimService:
    return ClaimService(
        db_session,
        task_queue=task_queue,
        file_inspector=file_inspector,
        audit=audit,
        clock=clock,
    )


async def get_admin_review_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    notifier: Annotated[NotificationSink, Depends(get_notifier)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AdminReviewService:
    return AdminReviewService(db_session, notifier=notifier, audit=audit, clock=clock)


async def get_insurer_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    notifier: Annotated[NotificationSink, Depends(get_notifier)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> InsurerDecisionService:
    return InsurerDecisionService(db_session, notifier=notifier, audit=audit, clock=clock)


async def get_monitoring_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> MonitoringService:
    return MonitoringService(db_session, clock=clock)
