"""Idempotency ledger for claim submissions.

A client-supplied key guards the non-idempotent, multi-step claim
submission. The unique constraint on the key is the real race guard;
``check`` is only the fast path.
"""

import hashlib
import json
from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.clock import Clock, ensure_utc, system_clock
from cropclaim.core.config import settings
from cropclaim.core.exceptions import IdempotencyConflictError, IdempotencyKeyReuseError
from cropclaim.database.enums import IdempotencyStatus
from cropclaim.repositories.idempotency_repository import IdempotencyRepository
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)


def fingerprint(request_snapshot: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a request snapshot."""
    canonical = json.dumps(request_snapshot, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyService:
    """Service for the idempotency ledger."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = system_clock,
        ttl_hours: Optional[int] = None,
    ):
        """Initialize service with database session.

        Args:
            session: SQLAlchemy async session
            clock: Time source for TTL computation
            ttl_hours: Record lifetime, defaults to IDEMPOTENCY_TTL_HOURS
        """
        self.session = session
        self.repository = IdempotencyRepository(session)
        self.clock = clock
        self.ttl_hours = ttl_hours if ttl_hours is not None else settings.pipeline.idempotency_ttl_hours

    async def check(
        self, key: str, request_snapshot: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the cached response for a completed, unexpired record.

        Expired records are purged on read. Pending and failed records
        return None so the caller may proceed.

        Args:
            key: Idempotency key
            request_snapshot: Current request, compared against the stored
                fingerprint of a completed record

        Raises:
            IdempotencyKeyReuseError: The key completed for a different request
        """
        record = await self.repository.get_by_key(key)
        if record is None:
            return None

        now = self.clock.now()
        if ensure_utc(record.expires_at) <= now:
            await self.repository.delete_by_key_if_expired(key, now)
            await self.session.commit()
            LOGGER.info("Purged expired idempotency record", extra={"idempotency_key": key})
            return None

        if record.status != IdempotencyStatus.COMPLETED:
            return None

        if (
            request_snapshot is not None
            and record.request_hash is not None
            and record.request_hash != fingerprint(request_snapshot)
        ):
            raise IdempotencyKeyReuseError(
                "Idempotency key was already used for a different request"
            )

        LOGGER.info("Idempotency cache hit", extra={"idempotency_key": key})
        return record.response_body

    async def create(
        self,
        key: str,
        request_snapshot: Dict[str, Any],
        ttl_hours: Optional[int] = None,
    ) -> None:
        """Insert a pending record for the key and commit it.

        A failed or expired record for the key is reclaimed. A live pending
        or completed record means another submission owns the key.

        Raises:
            IdempotencyConflictError: A live record already exists
        """
        now = self.clock.now()
        expires_at = now + timedelta(hours=ttl_hours if ttl_hours is not None else self.ttl_hours)
        request_hash = fingerprint(request_snapshot)

        try:
            await self.repository.insert_pending(key, request_hash, request_snapshot, now, expires_at)
            await self.session.commit()
            return
        except IntegrityError:
            await self.session.rollback()

        reclaimed = await self.repository.reclaim(key, request_hash, request_snapshot, now, expires_at)
        if not reclaimed:
            await self.session.rollback()
            raise IdempotencyConflictError(
                f"A request with idempotency key '{key}' is already in progress or completed"
            )
        await self.session.commit()
        LOGGER.info("Reclaimed idempotency record", extra={"idempotency_key": key})

    async def mark_completed(
        self,
        key: str,
        claim_id: UUID,
        response_body: Dict[str, Any],
        commit: bool = True,
    ) -> None:
        """Record the successful result. Safe to call more than once."""
        await self.repository.complete(key, claim_id, response_body, self.clock.now())
        if commit:
            await self.session.commit()

    async def mark_failed(self, key: str, error_message: str, commit: bool = True) -> None:
        """Record a failed attempt so the client can retry. Safe to call more than once."""
        await self.repository.fail(key, error_message, self.clock.now())
        if commit:
            await self.session.commit()

    async def cleanup_expired(self) -> int:
        """Delete records past their expiry.

        Returns:
            Number of records deleted
        """
        deleted = await self.repository.delete_expired(self.clock.now())
        await self.session.commit()
        if deleted:
            LOGGER.info(f"Cleaned up {deleted} expired idempotency records")
        return deleted
