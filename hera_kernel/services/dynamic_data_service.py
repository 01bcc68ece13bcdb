"""
DynamicDataService -- typed attributes hung off entities.

Responsibility:
    Set, batch-set and delete dynamic attributes.  Values are checked
    against their declared field_type before anything is written.

Invariants enforced:
    - One row per (entity_id, field_name).  Setting an existing field
      overwrites it (last write wins, no history).
    - A value that does not fit its field_type is rejected with
      TYPE_MISMATCH and the stored value is untouched.
    - A batch is validated in full before the first write; either every
      field is written or none is.
    - The entity must exist in the caller's organization.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from hera_kernel.domain import smart_code as smart_codes
from hera_kernel.domain.dtos import DynamicFieldInfo
from hera_kernel.domain.field_types import CoercedValue, coerce_value
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import (
    DynamicFieldNotFoundError,
    EntityNotFoundError,
    InvalidPayloadError,
)
from hera_kernel.logging_config import get_logger
from hera_kernel.models.dynamic_data import DynamicData
from hera_kernel.models.entity import Entity
from hera_kernel.services.base import BaseService, require_text

logger = get_logger("services.dynamic_data")


@dataclass(frozen=True)
class _FieldWrite:
    field_name: str
    coerced: CoercedValue
    smart_code: str


class DynamicDataService(BaseService[DynamicData]):
    """Write side of dynamic attributes."""

    def _entity(self, ctx: TenantContext, entity_id: Any) -> Entity:
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
        return entity

    def _existing(self, entity: Entity, field_name: str) -> DynamicData | None:
        return self.session.execute(
            select(DynamicData)
            .where(DynamicData.entity_id == entity.id)
            .where(DynamicData.field_name == field_name)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _prepare(field_name: Any, field_type: Any, value: Any, smart_code: Any) -> _FieldWrite:
        name = require_text(field_name, "field_name", 100)
        code = smart_codes.validate(smart_code, field=f"{name}.smart_code").value
        return _FieldWrite(
            field_name=name,
            coerced=coerce_value(name, field_type, value),
            smart_code=code,
        )

    def _write(self, ctx: TenantContext, entity: Entity, item: _FieldWrite) -> DynamicData:
        row = self._existing(entity, item.field_name)
        if row is None:
            savepoint = self.session.begin_nested()
            try:
                row = DynamicData(
                    organization_id=ctx.organization_id,
                    entity=entity,
                    field_name=item.field_name,
                    field_type=item.coerced.field_type,
                    smart_code=item.smart_code,
                    **item.coerced.column_values(),
                )
                self._stamp_new(row, ctx)
                self.session.add(row)
                self.session.flush()
                savepoint.commit()
                logger.info(
                    "dynamic_field_set",
                    extra={
                        "entity_id": str(entity.id),
                        "field_name": item.field_name,
                        "field_type": item.coerced.field_type,
                        "is_new": True,
                    },
                )
                return row
            except IntegrityError:
                savepoint.rollback()
                row = self._existing(entity, item.field_name)
                if row is None:
                    raise

        row.field_type = item.coerced.field_type
        row.smart_code = item.smart_code
        for column, column_value in item.coerced.column_values().items():
            setattr(row, column, column_value)
        self._stamp_change(row, ctx)
        self.session.flush()
        logger.info(
            "dynamic_field_set",
            extra={
                "entity_id": str(entity.id),
                "field_name": item.field_name,
                "field_type": item.coerced.field_type,
                "is_new": False,
            },
        )
        return row

    def set(
        self,
        ctx: TenantContext,
        entity_id: Any,
        field_name: Any,
        field_type: Any,
        value: Any,
        smart_code: Any,
    ) -> DynamicFieldInfo:
        """
        Raises:
            EntityNotFoundError: entity missing in this organization.
            TypeMismatchError: value does not fit field_type.
            InvalidSmartCodeError / InvalidPayloadError: bad input.
        """
        item = self._prepare(field_name, field_type, value, smart_code)
        entity = self._entity(ctx, entity_id)
        return DynamicFieldInfo.from_model(self._write(ctx, entity, item))

    def set_batch(
        self,
        ctx: TenantContext,
        entity_id: Any,
        fields: Any,
        entity: Entity | None = None,
    ) -> tuple[DynamicFieldInfo, ...]:
        """
        Set several fields at once.

        ``fields`` is either a mapping ``field_name -> {field_type, value,
        smart_code}`` or a list of ``{field_name, field_type, value,
        smart_code}``.
        """
        items = [self._prepare(*spec) for spec in _normalize_fields(fields)]
        names = [item.field_name for item in items]
        if len(set(names)) != len(names):
            raise InvalidPayloadError("duplicate field_name in batch", field="fields")

        target = entity if entity is not None else self._entity(ctx, entity_id)
        return tuple(
            DynamicFieldInfo.from_model(self._write(ctx, target, item))
            for item in items
        )

    def delete(self, ctx: TenantContext, entity_id: Any, field_name: Any) -> DynamicFieldInfo:
        """
        Remove one field.  Returns the removed value.

        Raises:
            EntityNotFoundError: entity missing in this organization.
            DynamicFieldNotFoundError: field not set on the entity.
        """
        name = require_text(field_name, "field_name", 100)
        entity = self._entity(ctx, entity_id)
        row = self._existing(entity, name)
        if row is None:
            raise DynamicFieldNotFoundError(entity.id, name)
        snapshot = DynamicFieldInfo.from_model(row)
        # delete-orphan cascade removes the row
        entity.dynamic_fields.remove(row)
        self.session.flush()
        logger.info(
            "dynamic_field_deleted",
            extra={"entity_id": str(entity.id), "field_name": name},
        )
        return snapshot


def _normalize_fields(fields: Any) -> list[tuple[Any, Any, Any, Any]]:
    """Accept the mapping or list form of a field batch."""
    if isinstance(fields, Mapping):
        specs = []
        for name, spec in fields.items():
            if not isinstance(spec, Mapping):
                raise InvalidPayloadError(
                    f"dynamic field '{name}' must be an object", field="fields"
                )
            specs.append(
                (name, spec.get("field_type"), spec.get("value"), spec.get("smart_code"))
            )
        return specs
    if isinstance(fields, Sequence) and not isinstance(fields, (str, bytes)):
        specs = []
        for spec in fields:
            if not isinstance(spec, Mapping):
                raise InvalidPayloadError("each dynamic field must be an object", field="fields")
            specs.append(
                (
                    spec.get("field_name"),
                    spec.get("field_type"),
                    spec.get("value"),
                    spec.get("smart_code"),
                )
            )
        return specs
    raise InvalidPayloadError("fields must be an object or a list", field="fields")
