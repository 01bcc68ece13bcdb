"""Read path for relationships."""

from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import or_, select

from hera_kernel.domain.dtos import Page, RelationshipInfo
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.models.relationship import Relationship
from hera_kernel.selectors.base import BaseSelector


class RelationshipSelector(BaseSelector[Relationship]):
    """
    Relationship queries.

    ``entity_id`` matches edges on either end; ``from_entity_id`` and
    ``to_entity_id`` match one end.  A malformed id matches nothing.
    """

    def find(
        self,
        ctx: TenantContext,
        *,
        entity_id: Any = None,
        from_entity_id: Any = None,
        to_entity_id: Any = None,
        relationship_type: str | None = None,
        active_only: bool = True,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> Page:
        stmt = (
            select(Relationship)
            .where(Relationship.organization_id == ctx.organization_id)
            .order_by(Relationship.created_at, Relationship.id)
        )

        for raw, column in (
            (from_entity_id, Relationship.from_entity_id),
            (to_entity_id, Relationship.to_entity_id),
        ):
            if raw is None:
                continue
            parsed = parse_uuid(raw)
            if parsed is None:
                return self.nothing(limit, offset)
            stmt = stmt.where(column == parsed)

        if entity_id is not None:
            parsed = parse_uuid(entity_id)
            if parsed is None:
                return self.nothing(limit, offset)
            stmt = stmt.where(
                or_(
                    Relationship.from_entity_id == parsed,
                    Relationship.to_entity_id == parsed,
                )
            )

        stmt = self._match_text(stmt, ((relationship_type, Relationship.relationship_type),))
        if stmt is None:
            return self.nothing(limit, offset)
        if active_only:
            stmt = stmt.where(Relationship.is_active.is_(True))

        return self._page(stmt, limit, offset, RelationshipInfo.from_model)

    def outgoing(
        self,
        ctx: TenantContext,
        entity_ids: Iterable[UUID],
        active_only: bool = True,
    ) -> dict[UUID, tuple[RelationshipInfo, ...]]:
        """Edges leaving each entity, keyed by from_entity_id."""
        ids = list(entity_ids)
        if not ids:
            return {}
        stmt = (
            select(Relationship)
            .where(Relationship.organization_id == ctx.organization_id)
            .where(Relationship.from_entity_id.in_(ids))
            .order_by(Relationship.created_at, Relationship.id)
        )
        if active_only:
            stmt = stmt.where(Relationship.is_active.is_(True))

        grouped: dict[UUID, list[RelationshipInfo]] = {}
        for row in self.session.execute(stmt).scalars():
            grouped.setdefault(row.from_entity_id, []).append(
                RelationshipInfo.from_model(row)
            )
        return {key: tuple(items) for key, items in grouped.items()}
