"""Role and capability model for already-authenticated actors.

Authentication happens upstream; the pipeline only receives the actor's
id and role and checks what that role may do.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from cropclaim.core.exceptions import AuthorizationError


class Role(str, Enum):
    FARMER = "FARMER"
    INSURER = "INSURER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class Capability(str, Enum):
    SUBMIT_CLAIM = "submit_claim"
    VIEW_OWN_CLAIMS = "view_own_claims"
    REVIEW_AI_REPORT = "review_ai_report"
    DECIDE_CLAIM = "decide_claim"
    PROCESS_PAYOUT = "process_payout"
    CANCEL_CLAIM = "cancel_claim"
    MANAGE_AI_TASKS = "manage_ai_tasks"
    VIEW_MONITORING = "view_monitoring"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.FARMER: frozenset({
        Capability.SUBMIT_CLAIM,
        Capability.VIEW_OWN_CLAIMS,
    }),
    Role.INSURER: frozenset({
        Capability.DECIDE_CLAIM,
        Capability.PROCESS_PAYOUT,
        Capability.CANCEL_CLAIM,
    }),
    Role.ADMIN: frozenset({
        Capability.REVIEW_AI_REPORT,
        Capability.MANAGE_AI_TASKS,
        Capability.VIEW_MONITORING,
    }),
    Role.SUPER_ADMIN: frozenset({
        Capability.REVIEW_AI_REPORT,
        Capability.MANAGE_AI_TASKS,
        Capability.VIEW_MONITORING,
        Capability.CANCEL_CLAIM,
    }),
}

ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


@dataclass(frozen=True)
class ActorContext:
    """The authenticated caller of a pipeline operation."""

    actor_id: UUID
    role: Role
    insurer_id: Optional[UUID] = None

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES.get(self.role, frozenset())

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        """Raise AuthorizationError unless the role grants the capability."""
        if not self.can(capability):
            raise AuthorizationError(
                f"Role {self.role.value} is not allowed to {capability.value}"
            )

    def require_insurer(self) -> UUID:
        """Return the insurer id the actor acts for."""
        if self.insurer_id is None:
            raise AuthorizationError("Actor is not linked to an insurer")
        return self.insurer_id
