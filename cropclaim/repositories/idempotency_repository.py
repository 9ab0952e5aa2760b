"""Repository for idempotency ledger records."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.database.enums import IdempotencyStatus
from cropclaim.database.models import IdempotencyRecord
from cropclaim.repositories.base_repository import BaseRepository


class IdempotencyRepository(BaseRepository[IdempotencyRecord]):
    """Data access for ``idempotency_records``.

    The unique constraint on ``key`` is the race guard; the conditional
    updates below only move records along legal transitions.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, IdempotencyRecord)

    async def get_by_key(self, key: str) -> Optional[IdempotencyRecord]:
        result = await self.session.execute(
            select(IdempotencyRecord).where(IdempotencyRecord.key == key)
        )
        return result.scalar_one_or_none()

    async def insert_pending(
        self,
        key: str,
        request_hash: str,
        request_body: dict[str, Any],
        now: datetime,
        expires_at: datetime,
    ) -> IdempotencyRecord:
        """Insert a pending record. Raises IntegrityError if the key exists."""
        return await self.create(
            key=key,
            status=IdempotencyStatus.PENDING,
            request_hash=request_hash,
            request_body=request_body,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )

    async def reclaim(
        self,
        key: str,
        request_hash: str,
        request_body: dict[str, Any],
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        """Reset a failed or expired record to pending.

        Returns:
            True if the record was reclaimed, False if it is still live
        """
        result = await self.session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.key == key,
                or_(
                    IdempotencyRecord.status == IdempotencyStatus.FAILED,
                    IdempotencyRecord.expires_at <= now,
                ),
            )
            .values(
                status=IdempotencyStatus.PENDING,
                request_hash=request_hash,
                request_body=request_body,
                response_body=None,
                claim_id=None,
                error_message=None,
                created_at=now,
                updated_at=now,
                expires_at=expires_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def complete(
        self,
        key: str,
        claim_id: UUID,
        response_body: dict[str, Any],
        now: datetime,
    ) -> int:
        """Move a pending or failed record to completed.

        A record that is already completed keeps its first response.
        """
        result = await self.session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.status != IdempotencyStatus.COMPLETED,
            )
            .values(
                status=IdempotencyStatus.COMPLETED,
                claim_id=claim_id,
                response_body=response_body,
                error_message=None,
                updated_at=now,
            )
        )
        return result.rowcount

    async def fail(self, key: str, error_message: str, now: datetime) -> int:
        """Move a pending record to failed. Completed records are left alone."""
        result = await self.session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.status == IdempotencyStatus.PENDING,
            )
            .values(
                status=IdempotencyStatus.FAILED,
                error_message=error_message,
                updated_at=now,
            )
        )
        return result.rowcount

    async def delete_by_key_if_expired(self, key: str, now: datetime) -> int:
        result = await self.session.execute(
            delete(IdempotencyRecord)
            .where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.expires_at <= now,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.expires_at <= now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
