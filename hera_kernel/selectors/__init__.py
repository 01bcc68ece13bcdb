"""Read-only query selectors."""

from hera_kernel.selectors.dynamic_data_selector import DynamicDataSelector
from hera_kernel.selectors.entity_selector import EntitySelector
from hera_kernel.selectors.relationship_selector import RelationshipSelector
from hera_kernel.selectors.transaction_selector import TransactionSelector

__all__ = [
    "DynamicDataSelector",
    "EntitySelector",
    "RelationshipSelector",
    "TransactionSelector",
]
