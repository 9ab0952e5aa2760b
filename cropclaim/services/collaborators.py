"""Interfaces to the systems around the pipeline.

File storage and scanning, notification delivery and audit persistence
are owned by other services. The pipeline talks to them through these
narrow interfaces; the default implementations validate by file
extension and write notifications and audit entries to the log.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

from cropclaim.database.enums import DocumentKind
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)

MB = 1024 * 1024

ALLOWED_EXTENSIONS: Dict[DocumentKind, frozenset[str]] = {
    DocumentKind.IMAGE: frozenset({".jpg", ".jpeg", ".png"}),
    DocumentKind.DOCUMENT: frozenset({".pdf", ".doc", ".docx"}),
}

MAX_FILE_SIZE: Dict[DocumentKind, int] = {
    DocumentKind.IMAGE: 10 * MB,
    DocumentKind.DOCUMENT: 20 * MB,
}


@dataclass
class FileValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass
class FileScanResult:
    clean: bool
    result: Optional[str] = None


@dataclass
class Notification:
    user_id: UUID
    title: str
    message: str
    severity: str = "info"


@dataclass
class AuditEntry:
    actor_id: Optional[UUID]
    action: str
    resource_type: str
    resource_id: str
    details: Dict[str, Any] = field(default_factory=dict)
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None


class FileInspector(Protocol):
    async def validate(self, path: str, kind: DocumentKind) -> FileValidationResult:
        ...

    async def scan(self, path: str) -> FileScanResult:
        ...


class NotificationSink(Protocol):
    async def notify(self, user_id: UUID, title: str, message: str, severity: str = "info") -> None:
        ...


class AuditSink(Protocol):
    async def record(
        self,
        actor_id: Optional[UUID],
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class ExtensionFileInspector:
    """Validate uploads by extension and, when the file is local, by size.

    Scanning is delegated to the upload service; files reaching the
    pipeline are reported clean.
    """

    async def validate(self, path: str, kind: DocumentKind) -> FileValidationResult:
        if not path or not path.strip():
            return FileValidationResult(valid=False, error="Empty file path")

        extension = os.path.splitext(path)[1].lower()
        allowed = ALLOWED_EXTENSIONS[DocumentKind(kind)]
        if extension not in allowed:
            return FileValidationResult(
                valid=False,
                error=f"Invalid {DocumentKind(kind).value} type '{extension}'. "
                      f"Allowed: {', '.join(sorted(allowed))}",
            )

        if os.path.isfile(path) and os.path.getsize(path) > MAX_FILE_SIZE[DocumentKind(kind)]:
            limit_mb = MAX_FILE_SIZE[DocumentKind(kind)] // MB
            return FileValidationResult(valid=False, error=f"File exceeds {limit_mb}MB limit")

        return FileValidationResult(valid=True)

    async def scan(self, path: str) -> FileScanResult:
        return FileScanResult(clean=True, result="not scanned by pipeline")


class LoggingNotificationSink:
    """Write notifications to the log instead of delivering them."""

    async def notify(self, user_id: UUID, title: str, message: str, severity: str = "info") -> None:
        LOGGER.info(
            f"Notification for {user_id}: {title}",
            extra={"user_id": str(user_id), "title": title, "body": message, "severity": severity},
        )


class LoggingAuditSink:
    """Write audit entries to the log."""

    async def record(
        self,
        actor_id: Optional[UUID],
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> None:
        LOGGER.info(
            f"Audit: {action} on {resource_type} {resource_id}",
            extra={
                "actor_id": str(actor_id) if actor_id else None,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "details": details or {},
                "before": before,
                "after": after,
            },
        )


async def safe_record(
    sink: AuditSink,
    actor_id: Optional[UUID],
    action: str,
    resource_type: str,
    resource_id: str,
    details: Optional[Dict[str, Any]] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """Record an audit entry; sink failures are logged, not raised."""
    try:
        await sink.record(actor_id, action, resource_type, resource_id, details, before, after)
    except Exception:
        LOGGER.error(f"Failed to record audit entry {action} for {resource_type} {resource_id}", exc_info=True)
