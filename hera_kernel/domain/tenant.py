"""
Tenant Context -- the (organization, actor) pair every operation runs under.

Responsibility:
    Resolve and validate the caller's organization and actor identifiers,
    and assert that rows read from the store belong to that organization.

Architecture position:
    Kernel > Domain.  Pure; the organization-exists check that needs a
    session lives in OrganizationService.require().

Invariants enforced:
    - organization_id is explicit on every call.  Nothing is read from
      process-wide state.
    - The nil UUID is the platform organization and never holds business
      data.
    - Writes need an actor (MISSING_ACTOR).  Reads need one too, but a
      missing actor on a read is reported as MISSING_TENANT_CONTEXT.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from hera_kernel.exceptions import (
    CrossTenantViolationError,
    MissingActorError,
    MissingTenantContextError,
)

PLATFORM_ORGANIZATION_ID = UUID(int=0)


def parse_uuid(value: Any) -> UUID | None:
    """Return ``value`` as a UUID, or None when it is not one."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class TenantContext:
    """
    Validated organization and actor for one public operation.

    Contract:
        Built only through ``resolve``.  Both identifiers are real,
        non-nil UUIDs.
    """

    organization_id: UUID
    actor_user_id: UUID

    @classmethod
    def resolve(
        cls,
        organization_id: Any,
        actor_user_id: Any,
        *,
        write: bool,
    ) -> "TenantContext":
        """
        Validate raw identifiers from a payload.

        Raises:
            MissingTenantContextError: organization missing, malformed or the
                platform organization; or the actor is bad on a read.
            MissingActorError: actor missing, malformed or nil on a write.
        """
        org_id = parse_uuid(organization_id)
        if org_id is None:
            raise MissingTenantContextError("organization_id", organization_id)
        if org_id == PLATFORM_ORGANIZATION_ID:
            raise MissingTenantContextError(
                "organization_id",
                organization_id,
                reason="the platform organization and cannot hold business data",
            )
        return cls(
            organization_id=org_id,
            actor_user_id=resolve_actor(actor_user_id, write=write),
        )

    def owns(self, row: Any) -> bool:
        return getattr(row, "organization_id", None) == self.organization_id

    def assert_owns(self, row: Any, record_type: str | None = None) -> None:
        """
        Raises:
            CrossTenantViolationError: row belongs to another organization.
        """
        if not self.owns(row):
            raise CrossTenantViolationError(
                record_type or type(row).__name__,
                getattr(row, "id", None),
                self.organization_id,
            )


def resolve_actor(actor_user_id: Any, *, write: bool) -> UUID:
    """Validate an actor identifier on its own (organization operations)."""
    actor = parse_uuid(actor_user_id)
    if actor is None or actor == PLATFORM_ORGANIZATION_ID:
        if write:
            raise MissingActorError(actor_user_id)
        raise MissingTenantContextError("actor_user_id", actor_user_id)
    return actor
