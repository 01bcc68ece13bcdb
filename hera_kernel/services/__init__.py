"""Services for the data engine (write side) and the public orchestrator."""

from hera_kernel.services.dynamic_data_service import DynamicDataService
from hera_kernel.services.entity_service import EntityService
from hera_kernel.services.organization_service import OrganizationService
from hera_kernel.services.relationship_service import RelationshipService
from hera_kernel.services.reversal_service import ReversalService
from hera_kernel.services.sequence_service import SequenceService
from hera_kernel.services.transaction_service import EmitOutcome, TransactionService
from hera_kernel.services.upsert_orchestrator import (
    DUPLICATE_SUPPRESSED,
    OPERATIONS,
    OperationResult,
    UpsertOrchestrator,
)

__all__ = [
    "DUPLICATE_SUPPRESSED",
    "DynamicDataService",
    "EmitOutcome",
    "EntityService",
    "OPERATIONS",
    "OperationResult",
    "OrganizationService",
    "RelationshipService",
    "ReversalService",
    "SequenceService",
    "TransactionService",
    "UpsertOrchestrator",
]
