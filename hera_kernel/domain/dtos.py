"""
DTOs -- immutable data structures crossing the service boundary.

Responsibility:
    Input specs produced by payload parsing (LineSpec, TransactionSpec) and
    the read-only results every service returns (OrganizationInfo,
    EntityInfo, DynamicFieldInfo, RelationshipInfo, TransactionInfo,
    TransactionLineInfo, Page).

Architecture position:
    Kernel > Domain.  Free of database access.  ``from_model()`` class
    methods are boundary converters invoked only from services and
    selectors, so ORM rows never leak to callers.

Invariants enforced:
    - Services return DTOs, never ORM entities.
    - Opaque JSON blobs (metadata, relationship_data, line_data) are deep
      copied on the way out so callers cannot mutate session state.
    - ``to_dict()`` yields JSON-shaped data: UUIDs and Decimals as strings,
      datetimes and dates in ISO-8601.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from hera_kernel.models.dynamic_data import DynamicData
    from hera_kernel.models.entity import Entity
    from hera_kernel.models.organization import Organization
    from hera_kernel.models.relationship import Relationship
    from hera_kernel.models.transaction import Transaction, TransactionLine


def to_plain(value: Any) -> Any:
    """JSON-shaped copy of a DTO, list, dict or scalar."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    return value


class _Serializable:
    def to_dict(self) -> dict[str, Any]:
        return {f.name: to_plain(getattr(self, f.name)) for f in fields(self)}


class LineSide(str, Enum):
    """Ledger side of a transaction line."""

    DEBIT = "DR"
    CREDIT = "CR"

    @property
    def opposite(self) -> LineSide:
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


# ---------------------------------------------------------------------------
# Input specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineSpec:
    """
    A validated transaction line ready to persist.

    Contract:
        Ledger lines carry a side and a currency and a non-negative amount.
        Non-ledger lines carry neither side nor currency requirements.
    """

    line_number: int
    line_type: str
    smart_code: str
    line_amount: Decimal
    is_ledger: bool = False
    side: LineSide | None = None
    currency: str | None = None
    entity_id: UUID | None = None
    description: str | None = None
    quantity: Decimal | None = None
    unit_amount: Decimal | None = None
    line_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionSpec:
    """A validated transaction header plus its lines."""

    transaction_type: str
    smart_code: str
    transaction_date: datetime
    lines: tuple[LineSpec, ...]
    transaction_code: str | None = None
    source_entity_id: UUID | None = None
    target_entity_id: UUID | None = None
    currency: str | None = None
    status: str = "posted"
    metadata: dict[str, Any] | None = None
    declared_total: Decimal | None = None
    reversal_of_id: UUID | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationInfo(_Serializable):
    id: UUID
    organization_name: str
    organization_code: str
    settings: dict[str, Any] | None
    status: str
    created_at: datetime
    updated_at: datetime
    created_by: UUID
    updated_by: UUID
    is_new: bool = False

    @classmethod
    def from_model(cls, model: Organization, is_new: bool = False) -> OrganizationInfo:
        return cls(
            id=model.id,
            organization_name=model.organization_name,
            organization_code=model.organization_code,
            settings=copy.deepcopy(model.settings),
            status=model.status,
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            updated_by=model.updated_by,
            is_new=is_new,
        )


@dataclass(frozen=True)
class DynamicFieldInfo(_Serializable):
    id: UUID
    entity_id: UUID
    field_name: str
    field_type: str
    value: Any
    smart_code: str
    created_at: datetime
    updated_at: datetime
    created_by: UUID
    updated_by: UUID

    @classmethod
    def from_model(cls, model: DynamicData) -> DynamicFieldInfo:
        return cls(
            id=model.id,
            entity_id=model.entity_id,
            field_name=model.field_name,
            field_type=model.field_type,
            value=copy.deepcopy(model.value),
            smart_code=model.smart_code,
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            updated_by=model.updated_by,
        )


@dataclass(frozen=True)
class RelationshipInfo(_Serializable):
    id: UUID
    organization_id: UUID
    from_entity_id: UUID
    to_entity_id: UUID
    relationship_type: str
    relationship_data: dict[str, Any] | None
    smart_code: str
    is_active: bool
    effective_date: datetime | None
    expiration_date: datetime | None
    created_at: datetime
    updated_at: datetime
    created_by: UUID
    updated_by: UUID

    @classmethod
    def from_model(cls, model: Relationship) -> RelationshipInfo:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            from_entity_id=model.from_entity_id,
            to_entity_id=model.to_entity_id,
            relationship_type=model.relationship_type,
            relationship_data=copy.deepcopy(model.relationship_data),
            smart_code=model.smart_code,
            is_active=model.is_active,
            effective_date=model.effective_date,
            expiration_date=model.expiration_date,
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            updated_by=model.updated_by,
        )


@dataclass(frozen=True)
class EntityInfo(_Serializable):
    """
    An entity, optionally hydrated with its dynamic fields and outgoing
    relationships.  ``is_new`` is True only on the upsert that inserted it.
    """

    id: UUID
    organization_id: UUID
    entity_type: str
    entity_name: str
    entity_code: str | None
    smart_code: str
    status: str
    metadata: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime
    created_by: UUID
    updated_by: UUID
    dynamic_fields: tuple[DynamicFieldInfo, ...] = ()
    relationships: tuple[RelationshipInfo, ...] = ()
    is_new: bool = False

    @classmethod
    def from_model(
        cls,
        model: Entity,
        dynamic_fields: tuple[DynamicFieldInfo, ...] = (),
        relationships: tuple[RelationshipInfo, ...] = (),
        is_new: bool = False,
    ) -> EntityInfo:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            entity_type=model.entity_type,
            entity_name=model.entity_name,
            entity_code=model.entity_code,
            smart_code=model.smart_code,
            status=model.status,
            metadata=copy.deepcopy(model.entity_metadata),
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            updated_by=model.updated_by,
            dynamic_fields=dynamic_fields,
            relationships=relationships,
            is_new=is_new,
        )

    def field_value(self, field_name: str) -> Any:
        for item in self.dynamic_fields:
            if item.field_name == field_name:
                return item.value
        return None


@dataclass(frozen=True)
class TransactionLineInfo(_Serializable):
    id: UUID
    transaction_id: UUID
    line_number: int
    line_type: str
    entity_id: UUID | None
    description: str | None
    quantity: Decimal | None
    unit_amount: Decimal | None
    line_amount: Decimal
    smart_code: str
    line_data: dict[str, Any] | None
    created_at: datetime
    created_by: UUID

    @classmethod
    def from_model(cls, model: TransactionLine) -> TransactionLineInfo:
        return cls(
            id=model.id,
            transaction_id=model.transaction_id,
            line_number=model.line_number,
            line_type=model.line_type,
            entity_id=model.entity_id,
            description=model.description,
            quantity=model.quantity,
            unit_amount=model.unit_amount,
            line_amount=model.line_amount,
            smart_code=model.smart_code,
            line_data=copy.deepcopy(model.line_data),
            created_at=model.created_at,
            created_by=model.created_by,
        )

    @property
    def side(self) -> str | None:
        return (self.line_data or {}).get("side")


@dataclass(frozen=True)
class TransactionInfo(_Serializable):
    id: UUID
    organization_id: UUID
    transaction_type: str
    transaction_code: str
    transaction_date: datetime
    source_entity_id: UUID | None
    target_entity_id: UUID | None
    total_amount: Decimal
    currency: str | None
    status: str
    smart_code: str
    metadata: dict[str, Any] | None
    idempotency_key: str | None
    reversal_of_id: UUID | None
    created_at: datetime
    updated_at: datetime
    created_by: UUID
    updated_by: UUID
    lines: tuple[TransactionLineInfo, ...] = ()

    @classmethod
    def from_model(cls, model: Transaction, include_lines: bool = True) -> TransactionInfo:
        lines: tuple[TransactionLineInfo, ...] = ()
        if include_lines:
            lines = tuple(
                TransactionLineInfo.from_model(line)
                for line in sorted(model.lines, key=lambda ln: ln.line_number)
            )
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            transaction_type=model.transaction_type,
            transaction_code=model.transaction_code,
            transaction_date=model.transaction_date,
            source_entity_id=model.source_entity_id,
            target_entity_id=model.target_entity_id,
            total_amount=model.total_amount,
            currency=model.currency,
            status=model.status,
            smart_code=model.smart_code,
            metadata=copy.deepcopy(model.transaction_metadata),
            idempotency_key=model.idempotency_key,
            reversal_of_id=model.reversal_of_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            updated_by=model.updated_by,
            lines=lines,
        )


@dataclass(frozen=True)
class Page(_Serializable):
    """One page of a filtered read.  ``total`` counts all matches."""

    items: tuple[Any, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["has_more"] = self.has_more
        return data
