"""Read path for dynamic attributes."""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from hera_kernel.domain.dtos import DynamicFieldInfo
from hera_kernel.domain.tenant import TenantContext
from hera_kernel.models.dynamic_data import DynamicData
from hera_kernel.selectors.base import BaseSelector


class DynamicDataSelector(BaseSelector[DynamicData]):
    """Dynamic fields by entity, always within the caller's organization."""

    def for_entities(
        self, ctx: TenantContext, entity_ids: Iterable[UUID]
    ) -> dict[UUID, tuple[DynamicFieldInfo, ...]]:
        ids = list(entity_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(DynamicData)
            .where(DynamicData.organization_id == ctx.organization_id)
            .where(DynamicData.entity_id.in_(ids))
            .order_by(DynamicData.entity_id, DynamicData.field_name)
        ).scalars().all()

        grouped: dict[UUID, list[DynamicFieldInfo]] = {}
        for row in rows:
            grouped.setdefault(row.entity_id, []).append(DynamicFieldInfo.from_model(row))
        return {entity_id: tuple(items) for entity_id, items in grouped.items()}
