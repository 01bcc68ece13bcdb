"""Pure domain layer: validators, tenant context, DTOs, clock."""

from hera_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from hera_kernel.domain.dtos import (
    DynamicFieldInfo,
    EntityInfo,
    LineSide,
    LineSpec,
    OrganizationInfo,
    Page,
    RelationshipInfo,
    TransactionInfo,
    TransactionLineInfo,
    TransactionSpec,
)
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import PLATFORM_ORGANIZATION_ID, TenantContext

__all__ = [
    "Clock",
    "DeterministicClock",
    "DynamicFieldInfo",
    "EngineSettings",
    "EntityInfo",
    "LineSide",
    "LineSpec",
    "OrganizationInfo",
    "PLATFORM_ORGANIZATION_ID",
    "Page",
    "RelationshipInfo",
    "SystemClock",
    "TenantContext",
    "TransactionInfo",
    "TransactionLineInfo",
    "TransactionSpec",
]
