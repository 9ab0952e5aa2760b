"""Policy resolution for claim intake.

Determines which policy a claim is filed under and which insurer it is
routed to. A claim is never created without a routable insurer.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cropclaim.core.exceptions import (
    PolicyCoverageError,
    PolicyInactiveError,
    PolicyNotFoundError,
    PolicyNotOwnedError,
    PolicyUnassignedError,
)
from cropclaim.database.enums import PolicyStatus
from cropclaim.database.models import Policy
from cropclaim.repositories.policy_repository import PolicyRepository
from cropclaim.repositories.user_repository import InsurerRepository
from cropclaim.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class PolicyResolution:
    """Outcome of resolving a claim's policy."""

    policy_id: UUID
    chosen_policy_id: UUID
    insurer_id: UUID
    sum_insured: Decimal
    policy_number: str
    policy_images: List[str] = field(default_factory=list)
    overlapping_policy_ids: List[UUID] = field(default_factory=list)


def _as_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class PolicyResolver:
    """Resolve a farmer's policy reference into a policy and an insurer."""

    def __init__(self, session: AsyncSession):
        self.policies = PolicyRepository(session)
        self.insurers = InsurerRepository(session)

    async def resolve(
        self,
        farmer_id: UUID,
        candidate: Union[str, UUID],
        incident_date: date,
        explicit_choice: Optional[Union[str, UUID]] = None,
    ) -> PolicyResolution:
        """Resolve the policy and insurer for a new claim.

        Args:
            farmer_id: Requesting farmer
            candidate: Policy id or human-readable policy number
            incident_date: Date of the incident
            explicit_choice: Policy the farmer picked among overlapping ones

        Returns:
            PolicyResolution with the filed policy, the chosen policy and
            the insurer the claim is assigned to

        Raises:
            PolicyNotFoundError, PolicyNotOwnedError, PolicyInactiveError,
            PolicyCoverageError, PolicyUnassignedError
        """
        policy = await self._find(farmer_id, candidate)
        self._check_eligible(policy, farmer_id, incident_date)
        self._check_assigned(policy)

        overlapping = await self.policies.list_active_covering(farmer_id, incident_date)

        if explicit_choice is not None:
            chosen = await self._find(farmer_id, explicit_choice)
            self._check_eligible(chosen, farmer_id, incident_date)
        elif len(overlapping) == 1:
            chosen = overlapping[0]
        else:
            # Several (or no) matching policies: the supplied policy is used
            # as chosen. Whether the earliest-starting policy should win
            # instead is an open product decision.
            if len(overlapping) > 1:
                LOGGER.warning(
                    f"Farmer {farmer_id} has {len(overlapping)} overlapping active policies "
                    f"for {incident_date}; using supplied policy {policy.id}",
                    extra={"farmer_id": str(farmer_id), "policy_id": str(policy.id)},
                )
            chosen = policy

        self._check_assigned(chosen)
        insurer = await self.insurers.get_by_id(chosen.service_provider_id)
        if insurer is None:
            raise PolicyUnassignedError(
                f"Insurer {chosen.service_provider_id} for policy {chosen.policy_number} not found. "
                f"Cannot assign claim."
            )

        return PolicyResolution(
            policy_id=policy.id,
            chosen_policy_id=chosen.id,
            insurer_id=insurer.id,
            sum_insured=chosen.sum_insured,
            policy_number=chosen.policy_number,
            policy_images=list(chosen.policy_images or []),
            overlapping_policy_ids=[p.id for p in overlapping],
        )

    async def _find(self, farmer_id: UUID, reference: Union[str, UUID]) -> Policy:
        policy = None
        policy_uuid = _as_uuid(reference)
        if policy_uuid is not None:
            policy = await self.policies.get_by_id(policy_uuid)
        if policy is None:
            policy = await self.policies.get_by_number_for_farmer(str(reference), farmer_id)
        if policy is None:
            raise PolicyNotFoundError(f"Policy '{reference}' not found")
        return policy

    @staticmethod
    def _check_assigned(policy: Policy) -> None:
        if policy.service_provider_id is None:
            raise PolicyUnassignedError(
                f"Policy {policy.policy_number} does not have an assigned insurer. Cannot create claim."
            )

    @staticmethod
    def _check_eligible(policy: Policy, farmer_id: UUID, incident_date: date) -> None:
        if policy.farmer_id != farmer_id:
            raise PolicyNotOwnedError(f"Policy {policy.policy_number} does not belong to this farmer")
        if policy.status != PolicyStatus.ACTIVE:
            raise PolicyInactiveError(
                f"Policy {policy.policy_number} is not active (status: {PolicyStatus(policy.status).value})"
            )
        if not (policy.start_date <= incident_date <= policy.end_date):
            raise PolicyCoverageError(
                f"Incident date ({incident_date.isoformat()}) must be within the policy coverage "
                f"period ({policy.start_date.isoformat()} to {policy.end_date.isoformat()})"
            )
