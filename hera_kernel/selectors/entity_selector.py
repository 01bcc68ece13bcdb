"""
Module: hera_kernel.selectors.entity_selector
Responsibility: Filtered, paginated entity reads with optional hydration of
    dynamic fields and outgoing relationships.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Results never include rows from another organization.
    - Filters that cannot match (malformed entity_id, non-string values)
      yield an empty page rather than an error.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select

from hera_kernel.domain.dtos import EntityInfo, Page
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import EntityNotFoundError
from hera_kernel.models.entity import Entity
from hera_kernel.selectors.base import BaseSelector
from hera_kernel.selectors.dynamic_data_selector import DynamicDataSelector
from hera_kernel.selectors.relationship_selector import RelationshipSelector


class EntitySelector(BaseSelector[Entity]):
    """Entity queries within one organization."""

    def __init__(self, session, settings: EngineSettings | None = None):
        super().__init__(session, settings)
        self._dynamic = DynamicDataSelector(session, self.settings)
        self._relationships = RelationshipSelector(session, self.settings)

    def hydrate(
        self,
        ctx: TenantContext,
        entities: list[Entity],
        include_dynamic: bool = False,
        include_relationships: bool = False,
        is_new: bool = False,
    ) -> list[EntityInfo]:
        """Convert rows to EntityInfo, loading side data in two queries."""
        ids = [entity.id for entity in entities]
        dynamic = self._dynamic.for_entities(ctx, ids) if include_dynamic else {}
        edges = self._relationships.outgoing(ctx, ids) if include_relationships else {}
        return [
            EntityInfo.from_model(
                entity,
                dynamic_fields=dynamic.get(entity.id, ()),
                relationships=edges.get(entity.id, ()),
                is_new=is_new,
            )
            for entity in entities
        ]

    def get(
        self,
        ctx: TenantContext,
        entity_id: Any,
        include_dynamic: bool = False,
        include_relationships: bool = False,
    ) -> EntityInfo:
        """
        Raises:
            EntityNotFoundError: no such entity in this organization.
        """
        parsed = parse_uuid(entity_id)
        entity = None
        if parsed is not None:
            entity = self.session.execute(
                select(Entity)
                .where(Entity.organization_id == ctx.organization_id)
                .where(Entity.id == parsed)
            ).scalar_one_or_none()
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return self.hydrate(ctx, [entity], include_dynamic, include_relationships)[0]

    def find(
        self,
        ctx: TenantContext,
        *,
        entity_type: str | None = None,
        entity_code: str | None = None,
        entity_id: Any = None,
        smart_code: str | None = None,
        status: str | None = None,
        text_search: str | None = None,
        include_dynamic: bool = False,
        include_relationships: bool = False,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> Page:
        stmt = (
            select(Entity)
            .where(Entity.organization_id == ctx.organization_id)
            .order_by(Entity.entity_name, Entity.id)
        )

        if entity_id is not None:
            parsed: UUID | None = parse_uuid(entity_id)
            if parsed is None:
                return self.nothing(limit, offset)
            stmt = stmt.where(Entity.id == parsed)
        stmt = self._match_text(stmt, (
            (entity_type, Entity.entity_type),
            (entity_code, Entity.entity_code),
            (smart_code, Entity.smart_code),
            (status, Entity.status),
        ))
        if stmt is None or (text_search is not None and not isinstance(text_search, str)):
            return self.nothing(limit, offset)
        if text_search and text_search.strip():
            term = text_search.strip().lower()
            stmt = stmt.where(
                or_(
                    func.lower(Entity.entity_name).contains(term, autoescape=True),
                    func.lower(Entity.entity_code).contains(term, autoescape=True),
                )
            )

        page = self._page(stmt, limit, offset, lambda row: row)
        items = self.hydrate(
            ctx, list(page.items), include_dynamic, include_relationships
        )
        return Page(items=tuple(items), total=page.total, limit=page.limit, offset=page.offset)
