"""Repository for policy lookups used by the policy resolver."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.database.enums import PolicyStatus
from cropclaim.database.models import Policy
from cropclaim.repositories.base_repository import BaseRepository


class PolicyRepository(BaseRepository[Policy]):
    """Repository for Policy records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Policy)

    async def get_by_number_for_farmer(
        self, policy_number: str, farmer_id: UUID
    ) -> Optional[Policy]:
        """Get a policy by its human-readable number, scoped to the farmer.

        Args:
            policy_number: Policy number as printed on the contract
            farmer_id: Owning farmer

        Returns:
            Policy instance or None if not found
        """
        result = await self.session.execute(
            select(Policy)
            .where(Policy.policy_number == policy_number, Policy.farmer_id == farmer_id)
            .order_by(Policy.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active_covering(self, farmer_id: UUID, incident_date: date) -> List[Policy]:
        """List the farmer's Active policies whose period contains the date.

        Args:
            farmer_id: Owning farmer
            incident_date: Date of the incident

        Returns:
            Matching policies ordered by start date
        """
        result = await self.session.execute(
            select(Policy)
            .where(
                Policy.farmer_id == farmer_id,
                Policy.status == PolicyStatus.ACTIVE,
                Policy.start_date <= incident_date,
                Policy.end_date >= incident_date,
            )
            .order_by(Policy.start_date.asc())
        )
        return list(result.scalars().all())
