"""
EntityService -- create-or-update and delete for the polymorphic entity table.

Responsibility:
    Upsert an entity together with its dynamic fields and outgoing
    relationships in one unit of work, and soft- or hard-delete entities.

Architecture position:
    Kernel > Services.  Delegates attribute writes to DynamicDataService and
    edge writes to RelationshipService; hydration uses EntitySelector.

Invariants enforced:
    - An entity_id from another organization is reported as NOT_FOUND, never
      as a cross-tenant error, so existence is not revealed.
    - (organization_id, entity_type, entity_code) identifies an entity when a
      code is given.  Concurrent creators converge on one row through the
      unique constraint and a savepoint retry.
    - Hard delete only when no relationship, transaction header or
      transaction line references the entity.  Dynamic rows go with it.

Failure modes:
    - EntityNotFoundError, InvalidSmartCodeError, InvalidPayloadError,
      TypeMismatchError (from dynamic fields), EndpointNotFoundError /
      CrossTenantViolationError (from relationships), EntityReferencedError.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import IntegrityError

from hera_kernel.domain import smart_code as smart_codes
from hera_kernel.domain.clock import Clock
from hera_kernel.domain.dtos import EntityInfo
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import (
    EntityNotFoundError,
    EntityReferencedError,
    InvalidPayloadError,
)
from hera_kernel.logging_config import get_logger
from hera_kernel.models.entity import Entity, EntityStatus
from hera_kernel.models.relationship import Relationship
from hera_kernel.models.transaction import Transaction, TransactionLine
from hera_kernel.selectors.entity_selector import EntitySelector
from hera_kernel.services.base import (
    BaseService,
    optional_mapping,
    optional_text,
    require_text,
)
from hera_kernel.services.dynamic_data_service import DynamicDataService
from hera_kernel.services.relationship_service import RelationshipService

logger = get_logger("services.entity")

_STATUSES = {s.value for s in EntityStatus}


class EntityService(BaseService[Entity]):
    """
    Write side of entities.

    Contract:
        All writes flush into the caller's session.  Returns EntityInfo DTOs
        hydrated according to the include flags.

    Non-goals:
        - Filtered reads (EntitySelector).
        - Commit or rollback.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._dynamic = DynamicDataService(session, self._clock, self.settings)
        self._relationships = RelationshipService(session, self._clock, self.settings)
        self._selector = EntitySelector(session, self.settings)

    def _get_owned(self, ctx: TenantContext, entity_id: Any) -> Entity:
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

    def _by_code(
        self, ctx: TenantContext, entity_type: str, entity_code: str
    ) -> Entity | None:
        return self.session.execute(
            select(Entity)
            .where(Entity.organization_id == ctx.organization_id)
            .where(Entity.entity_type == entity_type)
            .where(Entity.entity_code == entity_code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert(
        self,
        ctx: TenantContext,
        entity_type: str,
        entity_name: str,
        entity_code: str | None,
        smart_code: str,
        metadata: dict | None,
        status: str | None,
    ) -> Entity | None:
        """
        Insert inside a savepoint.  Returns None when another writer won the
        (org, type, code) race so the caller can update that row instead.
        """
        savepoint = self.session.begin_nested()
        try:
            entity = Entity(
                organization_id=ctx.organization_id,
                entity_type=entity_type,
                entity_name=entity_name,
                entity_code=entity_code,
                smart_code=smart_code,
                status=status or EntityStatus.ACTIVE.value,
                entity_metadata=metadata,
            )
            self._stamp_new(entity, ctx)
            self.session.add(entity)
            self.session.flush()
            savepoint.commit()
            return entity
        except IntegrityError:
            savepoint.rollback()
            if entity_code is None:
                raise
            logger.info(
                "entity_create_race_converged",
                extra={"entity_type": entity_type, "entity_code": entity_code},
            )
            return None

    def _check_code_free(
        self,
        ctx: TenantContext,
        entity: Entity,
        entity_type: str | None,
        entity_code: str | None,
    ) -> None:
        """Reject an update whose resulting (type, code) belongs to another row."""
        new_type = entity_type if entity_type is not None else entity.entity_type
        new_code = entity_code if entity_code is not None else entity.entity_code
        if new_code is None:
            return
        if new_type == entity.entity_type and new_code == entity.entity_code:
            return
        clash = self._by_code(ctx, new_type, new_code)
        if clash is not None and clash.id != entity.id:
            raise InvalidPayloadError(
                f"entity_code '{new_code}' is already used by another {new_type}",
                field="entity_code" if new_code != entity.entity_code else "entity_type",
            )

    def upsert(
        self,
        ctx: TenantContext,
        entity_type: Any = None,
        entity_name: Any = None,
        smart_code: Any = None,
        entity_code: Any = None,
        entity_id: Any = None,
        metadata: Any = None,
        status: Any = None,
        dynamic_fields: Any = None,
        relationships: Any = None,
        include_dynamic: bool = True,
        include_relationships: bool = True,
    ) -> EntityInfo:
        """
        Create or update one entity, then its fields and edges.

        With ``entity_id`` the type, name and smart code are optional and
        omitted values keep their stored value.  Without it all three are
        required.

        Raises:
            EntityNotFoundError: entity_id not in this organization.
            InvalidPayloadError, InvalidSmartCodeError: bad input.
        """
        updating = entity_id is not None
        if updating:
            etype = optional_text(entity_type, "entity_type", 100)
            name = optional_text(entity_name, "entity_name", 500)
            code = (
                smart_codes.validate(smart_code).value
                if smart_code is not None
                else None
            )
        else:
            etype = require_text(entity_type, "entity_type", 100)
            name = require_text(entity_name, "entity_name", 500)
            code = smart_codes.validate(smart_code).value
        ecode = optional_text(entity_code, "entity_code", 100)
        meta = optional_mapping(metadata, "metadata")
        if status is not None and status not in _STATUSES:
            raise InvalidPayloadError(
                f"status must be one of {sorted(_STATUSES)}", field="status"
            )
        edge_specs = _normalize_relationships(relationships)

        entity = None
        is_new = False
        if updating:
            entity = self._get_owned(ctx, entity_id)
        elif ecode is not None:
            entity = self._by_code(ctx, etype, ecode)

        if entity is None:
            entity = self._insert(ctx, etype, name, ecode, code, meta, status)
            if entity is None:
                entity = self._by_code(ctx, etype, ecode)
                if entity is None:
                    raise EntityNotFoundError(ecode)
            else:
                is_new = True

        if not is_new:
            self._check_code_free(ctx, entity, etype, ecode)
            if etype is not None:
                entity.entity_type = etype
            if name is not None:
                entity.entity_name = name
            if code is not None:
                entity.smart_code = code
            if ecode is not None:
                entity.entity_code = ecode
            if meta is not None:
                entity.entity_metadata = meta
            if status is not None:
                entity.status = status
            self._stamp_change(entity, ctx)
            self.session.flush()

        logger.info(
            "entity_created" if is_new else "entity_updated",
            extra={
                "entity_id": str(entity.id),
                "entity_type": entity.entity_type,
                "smart_code": entity.smart_code,
            },
        )

        if dynamic_fields is not None:
            self._dynamic.set_batch(ctx, entity.id, dynamic_fields, entity=entity)
        for spec in edge_specs:
            self._relationships.upsert(
                ctx,
                from_entity_id=entity.id,
                to_entity_id=spec.get("to_entity_id"),
                relationship_type=spec.get("relationship_type"),
                smart_code=spec.get("smart_code"),
                relationship_data=spec.get("relationship_data"),
                is_active=spec.get("is_active", True),
                relationship_id=spec.get("relationship_id"),
                effective_date=spec.get("effective_date"),
                expiration_date=spec.get("expiration_date"),
            )

        return self._selector.hydrate(
            ctx, [entity], include_dynamic, include_relationships, is_new=is_new
        )[0]

    def _referenced_by(self, entity: Entity) -> str | None:
        checks = (
            (
                "relationships",
                select(Relationship.id).where(
                    or_(
                        Relationship.from_entity_id == entity.id,
                        Relationship.to_entity_id == entity.id,
                    )
                ),
            ),
            (
                "transactions",
                select(Transaction.id).where(
                    or_(
                        Transaction.source_entity_id == entity.id,
                        Transaction.target_entity_id == entity.id,
                    )
                ),
            ),
            (
                "transaction lines",
                select(TransactionLine.id).where(TransactionLine.entity_id == entity.id),
            ),
        )
        for label, stmt in checks:
            if self.session.execute(select(exists(stmt))).scalar():
                return label
        return None

    def delete(self, ctx: TenantContext, entity_id: Any, hard: bool = False) -> EntityInfo:
        """
        Archive an entity, or remove it when ``hard`` is set.

        Returns:
            The entity as it was after archiving, or just before removal.

        Raises:
            EntityNotFoundError: not in this organization.
            EntityReferencedError: hard delete of a referenced entity.
        """
        entity = self._get_owned(ctx, entity_id)

        if not hard:
            entity.status = EntityStatus.ARCHIVED.value
            self._stamp_change(entity, ctx)
            self.session.flush()
            logger.info("entity_archived", extra={"entity_id": str(entity.id)})
            return EntityInfo.from_model(entity)

        referenced_by = self._referenced_by(entity)
        if referenced_by is not None:
            raise EntityReferencedError(entity.id, referenced_by)

        snapshot = EntityInfo.from_model(entity)
        # reload so the cascade sees every dynamic row
        self.session.expire(entity, ["dynamic_fields"])
        self.session.delete(entity)
        self.session.flush()
        logger.info("entity_deleted", extra={"entity_id": str(snapshot.id)})
        return snapshot


def _normalize_relationships(relationships: Any) -> list[Mapping[str, Any]]:
    if relationships is None:
        return []
    if isinstance(relationships, (str, bytes)) or not isinstance(relationships, Sequence):
        raise InvalidPayloadError("relationships must be a list", field="relationships")
    for spec in relationships:
        if not isinstance(spec, Mapping):
            raise InvalidPayloadError(
                "each relationship must be an object", field="relationships"
            )
    return list(relationships)
