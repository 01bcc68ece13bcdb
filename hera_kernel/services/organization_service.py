"""
OrganizationService -- tenant records.

Responsibility:
    Create or update organizations by organization_code, read them, and
    confirm a tenant exists before any business operation runs in it.

Invariants enforced:
    - organization_code is globally unique; concurrent creates with the same
      code converge on one row.
    - Operations run under an actor only; there is no tenant context yet.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from hera_kernel.domain.dtos import OrganizationInfo
from hera_kernel.domain.tenant import PLATFORM_ORGANIZATION_ID, TenantContext, parse_uuid
from hera_kernel.exceptions import InvalidPayloadError, OrganizationNotFoundError
from hera_kernel.logging_config import get_logger
from hera_kernel.models.organization import Organization, OrganizationStatus
from hera_kernel.services.base import (
    BaseService,
    optional_mapping,
    optional_text,
    require_text,
)

logger = get_logger("services.organization")

_STATUSES = {s.value for s in OrganizationStatus}


class OrganizationService(BaseService[Organization]):
    """Manage tenants.  All methods return OrganizationInfo DTOs."""

    def _by_code(self, organization_code: str) -> Organization | None:
        return self.session.execute(
            select(Organization)
            .where(Organization.organization_code == organization_code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _by_id(self, organization_id: Any) -> Organization | None:
        parsed = parse_uuid(organization_id)
        if parsed is None:
            return None
        return self.session.get(Organization, parsed)

    def require(self, ctx: TenantContext) -> None:
        """
        Raises:
            OrganizationNotFoundError: the context's organization does not exist.
        """
        if self._by_id(ctx.organization_id) is None:
            raise OrganizationNotFoundError(ctx.organization_id)

    def get(
        self, organization_id: Any = None, organization_code: str | None = None
    ) -> OrganizationInfo:
        """
        Look up by id or code.

        Raises:
            InvalidPayloadError: neither identifier supplied.
            OrganizationNotFoundError: no match.
        """
        if organization_id is None and organization_code is None:
            raise InvalidPayloadError(
                "organization_id or organization_code is required",
                field="organization_id",
            )
        org = (
            self._by_id(organization_id)
            if organization_id is not None
            else self._by_code(organization_code)
        )
        if org is None:
            raise OrganizationNotFoundError(organization_id or organization_code)
        return OrganizationInfo.from_model(org)

    def upsert(
        self,
        actor_user_id: UUID,
        organization_code: Any,
        organization_name: Any = None,
        settings: Any = None,
        status: Any = None,
    ) -> OrganizationInfo:
        """
        Create the organization with this code, or update it if it exists.

        Raises:
            InvalidPayloadError: code missing, name missing on create,
                unknown status, or settings not an object.
        """
        code = require_text(organization_code, "organization_code", 100)
        name = optional_text(organization_name, "organization_name")
        settings = optional_mapping(settings, "settings")
        if status is not None and status not in _STATUSES:
            raise InvalidPayloadError(
                f"status must be one of {sorted(_STATUSES)}", field="status"
            )

        now = self._now()
        org = self._by_code(code)
        is_new = False

        if org is None:
            if name is None:
                raise InvalidPayloadError(
                    "organization_name is required", field="organization_name"
                )
            savepoint = self.session.begin_nested()
            try:
                org = Organization(
                    organization_code=code,
                    organization_name=name,
                    settings=settings,
                    status=status or OrganizationStatus.ACTIVE.value,
                )
                org.stamp_created(actor_user_id, now)
                self.session.add(org)
                self.session.flush()
                savepoint.commit()
                is_new = True
            except IntegrityError:
                savepoint.rollback()
                org = self._by_code(code)
                if org is None:
                    raise
                logger.info(
                    "organization_create_race_converged",
                    extra={"organization_code": code},
                )

        if org.id == PLATFORM_ORGANIZATION_ID:
            raise InvalidPayloadError(
                "the platform organization cannot be modified",
                field="organization_code",
            )

        if not is_new:
            if name is not None:
                org.organization_name = name
            if settings is not None:
                org.settings = settings
            if status is not None:
                org.status = status
            org.stamp_updated(actor_user_id, now)
            self.session.flush()

        logger.info(
            "organization_created" if is_new else "organization_updated",
            extra={
                "organization_id": str(org.id),
                "organization_code": code,
                "actor_id": str(actor_user_id),
            },
        )
        return OrganizationInfo.from_model(org, is_new=is_new)
