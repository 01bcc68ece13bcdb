"""ORM models for the six core relations."""

from hera_kernel.models.dynamic_data import DynamicData, FieldType
from hera_kernel.models.entity import Entity, EntityStatus
from hera_kernel.models.organization import Organization, OrganizationStatus
from hera_kernel.models.relationship import Relationship
from hera_kernel.models.sequence import SequenceCounter
from hera_kernel.models.transaction import (
    Transaction,
    TransactionLine,
    TransactionStatus,
)

__all__ = [
    "DynamicData",
    "Entity",
    "EntityStatus",
    "FieldType",
    "Organization",
    "OrganizationStatus",
    "Relationship",
    "SequenceCounter",
    "Transaction",
    "TransactionLine",
    "TransactionStatus",
]
