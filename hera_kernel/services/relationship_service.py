"""
RelationshipService -- typed edges between entities.

Responsibility:
    Create, update and deactivate relationships.  Both endpoints must be
    entities in the edge's own organization.

Invariants enforced:
    - A missing endpoint fails with ENDPOINT_NOT_FOUND; an endpoint in
      another organization fails with CROSS_TENANT_VIOLATION.  No row is
      written in either case.
    - Edges are never deleted.  Deactivation clears is_active and stamps
      expiration_date.
    - For relationship types configured as single-active-edge, inserting an
      active edge first deactivates the other active edges of that type
      leaving the same from_entity.  Other types tolerate duplicates.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from hera_kernel.domain import smart_code as smart_codes
from hera_kernel.domain.dtos import RelationshipInfo
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import (
    CrossTenantViolationError,
    EndpointNotFoundError,
    InvalidPayloadError,
    RelationshipNotFoundError,
)
from hera_kernel.logging_config import get_logger
from hera_kernel.models.entity import Entity
from hera_kernel.models.relationship import Relationship
from hera_kernel.services.base import (
    BaseService,
    optional_datetime,
    optional_mapping,
    require_text,
)

logger = get_logger("services.relationship")


def resolve_endpoint(session, ctx: TenantContext, entity_id: Any, role: str) -> Entity:
    """
    Load an entity referenced by a relationship or transaction.

    Raises:
        EndpointNotFoundError: no entity with that id anywhere.
        CrossTenantViolationError: the entity belongs to another organization.
    """
    parsed = parse_uuid(entity_id)
    entity = session.get(Entity, parsed) if parsed is not None else None
    if entity is None:
        raise EndpointNotFoundError(entity_id, role)
    if entity.organization_id != ctx.organization_id:
        logger.warning(
            "cross_tenant_reference_blocked",
            extra={"role": role, "referenced_entity_id": str(entity.id)},
        )
        raise CrossTenantViolationError("Entity", entity.id, ctx.organization_id)
    return entity


class RelationshipService(BaseService[Relationship]):
    """Write side of relationships."""

    def _get_owned(self, ctx: TenantContext, relationship_id: Any) -> Relationship:
        parsed = parse_uuid(relationship_id)
        edge = None
        if parsed is not None:
            edge = self.session.execute(
                select(Relationship)
                .where(Relationship.organization_id == ctx.organization_id)
                .where(Relationship.id == parsed)
            ).scalar_one_or_none()
        if edge is None:
            raise RelationshipNotFoundError(relationship_id)
        return edge

    def _deactivate_siblings(
        self,
        ctx: TenantContext,
        from_entity_id: UUID,
        relationship_type: str,
        keep_id: UUID | None,
    ) -> int:
        stmt = (
            select(Relationship)
            .where(Relationship.organization_id == ctx.organization_id)
            .where(Relationship.from_entity_id == from_entity_id)
            .where(Relationship.relationship_type == relationship_type)
            .where(Relationship.is_active.is_(True))
            .with_for_update()
        )
        if keep_id is not None:
            stmt = stmt.where(Relationship.id != keep_id)

        now = self._now()
        count = 0
        for edge in self.session.execute(stmt).scalars():
            edge.is_active = False
            edge.expiration_date = now
            self._stamp_change(edge, ctx)
            count += 1
        if count:
            logger.info(
                "relationship_siblings_deactivated",
                extra={
                    "from_entity_id": str(from_entity_id),
                    "relationship_type": relationship_type,
                    "count": count,
                },
            )
        return count

    def upsert(
        self,
        ctx: TenantContext,
        from_entity_id: Any,
        to_entity_id: Any,
        relationship_type: Any,
        smart_code: Any,
        relationship_data: Any = None,
        is_active: Any = True,
        relationship_id: Any = None,
        effective_date: Any = None,
        expiration_date: Any = None,
    ) -> RelationshipInfo:
        """
        Insert an edge, or update the one named by ``relationship_id``.

        Raises:
            EndpointNotFoundError, CrossTenantViolationError: bad endpoint.
            RelationshipNotFoundError: relationship_id not in this tenant.
            InvalidSmartCodeError, InvalidPayloadError: bad input.
        """
        rel_type = require_text(relationship_type, "relationship_type", 100)
        code = smart_codes.validate(smart_code).value
        data = optional_mapping(relationship_data, "relationship_data")
        if not isinstance(is_active, bool):
            raise InvalidPayloadError("is_active must be a boolean", field="is_active")
        effective = optional_datetime(effective_date, "effective_date")
        expiration = optional_datetime(expiration_date, "expiration_date")

        source = resolve_endpoint(self.session, ctx, from_entity_id, "from_entity")
        target = resolve_endpoint(self.session, ctx, to_entity_id, "to_entity")

        edge = None
        if relationship_id is not None:
            edge = self._get_owned(ctx, relationship_id)

        if is_active and rel_type in self.settings.single_active_edge_types:
            self._deactivate_siblings(
                ctx, source.id, rel_type, edge.id if edge is not None else None
            )

        if edge is None:
            edge = Relationship(
                organization_id=ctx.organization_id,
                from_entity_id=source.id,
                to_entity_id=target.id,
                relationship_type=rel_type,
                relationship_data=data,
                smart_code=code,
                is_active=is_active,
                effective_date=effective or self._now(),
                expiration_date=expiration,
            )
            self._stamp_new(edge, ctx)
            self.session.add(edge)
            event = "relationship_created"
        else:
            edge.from_entity_id = source.id
            edge.to_entity_id = target.id
            edge.relationship_type = rel_type
            edge.smart_code = code
            edge.is_active = is_active
            if data is not None:
                edge.relationship_data = data
            if effective is not None:
                edge.effective_date = effective
            if expiration is not None:
                edge.expiration_date = expiration
            self._stamp_change(edge, ctx)
            event = "relationship_updated"

        self.session.flush()
        logger.info(
            event,
            extra={
                "relationship_id": str(edge.id),
                "relationship_type": rel_type,
                "from_entity_id": str(source.id),
                "to_entity_id": str(target.id),
            },
        )
        return RelationshipInfo.from_model(edge)

    def deactivate(self, ctx: TenantContext, relationship_id: Any) -> RelationshipInfo:
        """
        Soft-deactivate an edge.  Deactivating an inactive edge is a no-op.

        Raises:
            RelationshipNotFoundError: not in this organization.
        """
        edge = self._get_owned(ctx, relationship_id)
        if edge.is_active:
            edge.is_active = False
            edge.expiration_date = self._now()
            self._stamp_change(edge, ctx)
            self.session.flush()
            logger.info(
                "relationship_deactivated",
                extra={"relationship_id": str(edge.id)},
            )
        return RelationshipInfo.from_model(edge)
