"""Repository for users and insurers.

Only the lookups the pipeline needs for routing and notifications live
here; user management itself happens upstream.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.auth import ADMIN_ROLES
from cropclaim.database.enums import UserStatus
from cropclaim.database.models import Insurer, User
from cropclaim.repositories.base_repository import BaseRepository
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User entity operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    async def list_active_admin_ids(self) -> List[UUID]:
        """Get ids of active ADMIN and SUPER_ADMIN users.

        Returns:
            List of user ids to notify about claims awaiting review
        """
        result = await self.session.execute(
            select(User.id).where(
                User.role.in_([role.value for role in ADMIN_ROLES]),
                User.status == UserStatus.ACTIVE,
            )
        )
        return list(result.scalars().all())


class InsurerRepository(BaseRepository[Insurer]):
    """Repository for Insurer (service provider) records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Insurer)

    async def get_notification_target(self, insurer_id: UUID) -> Optional[UUID]:
        """Get the user account that receives notifications for an insurer."""
        insurer = await self.get_by_id(insurer_id)
        return insurer.user_id if insurer else None
