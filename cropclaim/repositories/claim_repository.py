"""Repository for claims and their attached documents.

Every mutation of a claim goes through ``update_fields``: a targeted
``UPDATE ... SET <changed columns>`` guarded by optional conditions on the
current persisted state, so concurrent writers never overwrite each
other's columns and a lost race is visible as a zero row count.
"""

from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cropclaim.database.enums import AiTaskStatus, ClaimStatus, DocumentKind, VerificationStatus
from cropclaim.database.models import AiTask, Claim, ClaimDocument
from cropclaim.repositories.base_repository import BaseRepository


class ClaimRepository(BaseRepository[Claim]):
    """Repository for Claim records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Claim)

    async def claim_id_exists(self, claim_id: str) -> bool:
        result = await self.session.execute(
            select(exists().where(Claim.claim_id == claim_id))
        )
        return bool(result.scalar())

    async def get_with_relations(self, id: UUID) -> Optional[Claim]:
        """Get a claim with its documents, policy and insurer loaded.

        The session's identity map is bypassed so the projection always
        reflects the latest committed row.
        """
        result = await self.session.execute(
            select(Claim)
            .where(Claim.id == id)
            .options(
                selectinload(Claim.documents),
                selectinload(Claim.policy),
                selectinload(Claim.assigned_to),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_documents(
        self,
        claim_uuid: UUID,
        paths: List[str],
        kind: DocumentKind,
        now: datetime,
    ) -> List[ClaimDocument]:
        """Attach file references to a claim inside the current transaction."""
        documents = [
            ClaimDocument(
                claim_id=claim_uuid,
                path=path,
                kind=kind,
                file_name=path.rsplit("/", 1)[-1],
                created_at=now,
            )
            for path in paths
        ]
        self.session.add_all(documents)
        await self.session.flush()
        return documents

    async def update_fields(
        self,
        id: UUID,
        values: dict[str, Any],
        **conditions: Any,
    ) -> int:
        """Apply a targeted partial update to one claim.

        Args:
            id: Claim UUID
            values: Column name to new value
            **conditions: Column name to required current value; a list,
                tuple, set or frozenset means "any of"

        Returns:
            Number of rows updated (0 when a condition no longer holds)
        """
        stmt = update(Claim).where(Claim.id == id)
        for column, expected in conditions.items():
            attr = getattr(Claim, column)
            if isinstance(expected, (list, tuple, set, frozenset)):
                stmt = stmt.where(attr.in_(list(expected)))
            elif expected is None:
                stmt = stmt.where(attr.is_(None))
            else:
                stmt = stmt.where(attr == expected)
        result = await self.session.execute(stmt.values(**values))
        return result.rowcount

    async def advance_to_admin_review(self, id: UUID, now: datetime) -> bool:
        """Atomically move a claim past the aggregation barrier.

        The claim advances only if it is still ``Pending``, owns at least
        one AI task and none of its tasks is incomplete. The count and the
        compare are evaluated by the database in the same statement.

        Returns:
            True if this call performed the transition
        """
        has_tasks = exists().where(AiTask.claim_id == id)
        has_incomplete = exists().where(
            AiTask.claim_id == id,
            AiTask.status != AiTaskStatus.COMPLETED,
        )
        result = await self.session.execute(
            update(Claim)
            .where(
                Claim.id == id,
                Claim.verification_status == VerificationStatus.PENDING,
                has_tasks,
                ~has_incomplete,
            )
            .values(
                verification_status=VerificationStatus.AI_PROCESSED_ADMIN_REVIEW,
                ai_processed_at=now,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    async def list_awaiting_aggregation(self, limit: int = 100) -> List[UUID]:
        """Ids of pending claims whose AI tasks have all completed."""
        has_tasks = exists().where(AiTask.claim_id == Claim.id)
        has_incomplete = exists().where(
            AiTask.claim_id == Claim.id,
            AiTask.status != AiTaskStatus.COMPLETED,
        )
        result = await self.session.execute(
            select(Claim.id)
            .where(
                Claim.verification_status == VerificationStatus.PENDING,
                has_tasks,
                ~has_incomplete,
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_farmer(
        self, farmer_id: UUID, skip: int = 0, limit: int = 50
    ) -> List[Claim]:
        result = await self.session.execute(
            select(Claim)
            .where(Claim.farmer_id == farmer_id, Claim.deleted_at.is_(None))
            .options(selectinload(Claim.documents), selectinload(Claim.assigned_to))
            .order_by(Claim.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_insurer(
        self,
        insurer_id: UUID,
        status: Optional[ClaimStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Claim], int]:
        """List claims assigned to an insurer with a total count."""
        conditions = [Claim.assigned_to_id == insurer_id, Claim.deleted_at.is_(None)]
        if status is not None:
            conditions.append(Claim.status == status)

        total = await self.session.scalar(
            select(func.count()).select_from(Claim).where(*conditions)
        )
        result = await self.session.execute(
            select(Claim)
            .where(*conditions)
            .options(selectinload(Claim.documents), selectinload(Claim.assigned_to))
            .order_by(Claim.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_by_verification_status(
        self,
        verification_status: VerificationStatus,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Claim], int]:
        """List non-deleted claims in a verification state, oldest first."""
        conditions = [
            Claim.verification_status == verification_status,
            Claim.deleted_at.is_(None),
        ]
        total = await self.session.scalar(
            select(func.count()).select_from(Claim).where(*conditions)
        )
        result = await self.session.execute(
            select(Claim)
            .where(*conditions)
            .options(selectinload(Claim.documents), selectinload(Claim.assigned_to))
            .order_by(Claim.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def count_admin_decisions(
        self, verification_status: VerificationStatus, since: datetime
    ) -> int:
        """Count claims an admin moved into a state since the given instant."""
        result = await self.session.scalar(
            select(func.count())
            .select_from(Claim)
            .where(
                Claim.verification_status == verification_status,
                Claim.admin_override_at >= since,
            )
        )
        return int(result or 0)

    async def count_where(self, *conditions: Any) -> int:
        result = await self.session.scalar(
            select(func.count()).select_from(Claim).where(and_(*conditions))
        )
        return int(result or 0)

    async def list_stuck(self, created_before: datetime, limit: int = 100) -> List[Tuple[Claim, int, int]]:
        """Find Pending claims with incomplete AI work older than a cutoff.

        Returns:
            Tuples of (claim, total task count, completed task count)
        """
        total_tasks = func.count(AiTask.id)
        completed_tasks = func.sum(case((AiTask.status == AiTaskStatus.COMPLETED, 1), else_=0))
        result = await self.session.execute(
            select(Claim, total_tasks, completed_tasks)
            .join(AiTask, AiTask.claim_id == Claim.id)
            .where(
                Claim.verification_status == VerificationStatus.PENDING,
                Claim.deleted_at.is_(None),
                Claim.created_at < created_before,
            )
            .group_by(Claim.id)
            .having(completed_tasks < total_tasks)
            .order_by(Claim.created_at.asc())
            .limit(limit)
        )
        return [(row[0], int(row[1]), int(row[2] or 0)) for row in result.all()]
